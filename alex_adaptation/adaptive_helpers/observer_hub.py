# alex_adaptation/adaptive_helpers/observer_hub.py
import asyncio
import logging
from typing import Dict, Any, List

from ..protocols import Observer

logger_observer_hub = logging.getLogger(__name__)

# Lifecycle notifications emitted by the engines
EVENT_PERFORMANCE_ANALYZED = "performanceAnalyzed"
EVENT_DECISION_MADE = "decisionMade"
EVENT_OPTIMIZATION_COMPLETED = "optimizationCompleted"
EVENT_CONFLICT_DETECTION_COMPLETED = "conflictDetectionCompleted"
EVENT_CONFLICT_RESOLVED = "conflictResolved"


class ObserverHub:
    """
    Explicit observer registry for lifecycle notifications.

    Observers are called in registration order. Coroutine observers are awaited.
    A failing observer is logged and skipped; it never breaks the engine that
    emitted the event.
    """

    def __init__(self):
        self._observers: Dict[str, List[Observer]] = {}

    def register(self, event: str, observer: Observer) -> None:
        self._observers.setdefault(event, []).append(observer)
        logger_observer_hub.debug(f"Registered observer {getattr(observer, '__name__', observer)} for '{event}'.")

    def unregister(self, event: str, observer: Observer) -> bool:
        observers = self._observers.get(event, [])
        if observer in observers:
            observers.remove(observer)
            return True
        return False

    def observer_count(self, event: str) -> int:
        return len(self._observers.get(event, []))

    async def notify(self, event: str, payload: Dict[str, Any]) -> int:
        """Delivers ``payload`` to every observer of ``event``. Returns the delivered count."""
        delivered = 0
        for observer in list(self._observers.get(event, [])):
            try:
                result = observer(event, payload)
                if asyncio.iscoroutine(result):
                    await result
                delivered += 1
            except Exception as e:
                logger_observer_hub.exception(f"Observer {getattr(observer, '__name__', observer)} failed on '{event}': {e}")
        return delivered

    def clear(self) -> None:
        self._observers.clear()
