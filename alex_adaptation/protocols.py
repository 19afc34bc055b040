# alex_adaptation/protocols.py

from typing import Protocol, Dict, Any, Optional, Callable, Awaitable, Union, runtime_checkable


@runtime_checkable
class AdaptiveComponent(Protocol):
    """Standard interface for all adaptation loop components"""

    async def initialize(self, config: Dict[str, Any], controller: Any) -> bool:
        """Initialize component with configuration and controller reference."""
        ...

    async def process(self, input_state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Process input state and return output."""
        ...

    async def reset(self) -> None:
        """Reset component to its initial state."""
        ...

    async def get_status(self) -> Dict[str, Any]:
        """Get the component's current status and key metrics."""
        ...

    async def shutdown(self) -> None:
        """Perform any necessary cleanup before the loop stops."""
        ...


@runtime_checkable
class MetricsProvider(Protocol):
    """Source of raw metrics for one adaptation cycle."""

    async def collect(self) -> Dict[str, Any]:
        """Return a nested metrics mapping (cpu, memory, performance, throughput, quality, errors)."""
        ...


# Observers may be plain callables or coroutine functions taking (event, payload).
Observer = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]
