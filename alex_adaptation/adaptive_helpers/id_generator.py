# alex_adaptation/adaptive_helpers/id_generator.py
import itertools
import random
from typing import Optional


class IdGenerator:
    """
    Produces identifiers of the form ``<prefix>_<counter>_<hex>``.

    The hex suffix comes from a ``random.Random`` seeded at construction, so two
    generators with the same seed yield the same id sequence. The same generator
    also backs the optional score noise of the decision engine.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)
        self._counter = itertools.count(1)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._counter)}_{self._rng.getrandbits(32):08x}"

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def reseed(self, seed: Optional[int]) -> None:
        self.seed = seed
        self._rng = random.Random(seed)
        self._counter = itertools.count(1)
