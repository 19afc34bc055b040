# alex_adaptation/utils/scoring.py

from typing import Iterable, Optional


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamps a value to [low, high]."""
    return max(low, min(high, value))


def mean(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None for an empty iterable."""
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def ema(previous: float, sample: float, alpha: float, count: int) -> float:
    """Exponential moving average. The first sample seeds the average."""
    if count <= 1:
        return sample
    return alpha * sample + (1.0 - alpha) * previous
