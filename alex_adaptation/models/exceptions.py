# alex_adaptation/models/exceptions.py

class AdaptationError(Exception):
    """Base exception for adaptation loop errors."""
    pass

class ValidationFailure(AdaptationError):
    """Raised when an engine receives malformed input."""
    pass

class AnalysisFailure(AdaptationError):
    """Raised when an internal analysis computation fails."""
    pass

class ResolutionFailure(AdaptationError):
    """Raised when a specific conflict handler fails."""

    def __init__(self, message: str, conflict_id: str = ""):
        super().__init__(message)
        self.conflict_id = conflict_id

class ConcurrencyRejection(AdaptationError):
    """Raised in strict mode when a cycle is already running on the engine."""
    pass

class ConfigurationError(AdaptationError):
    """Raised when the configuration file cannot be loaded or is invalid."""
    pass
