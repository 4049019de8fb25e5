# plant/rng.py
from __future__ import annotations

import math
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

_LCG_A = 1664525
_LCG_C = 1013904223
_U32 = 2 ** 32


class DeterministicRandom:
    """
    Small LCG so that a scenario run can be replayed exactly from its seed.
    Python's random.Random is not used: the stream must be identical across
    interpreter versions and must not be touched by anything else.
    """

    def __init__(self, seed: int = 1):
        self.state = (int(seed) % _U32) or 1
        self._spare: Optional[float] = None

    def next(self) -> float:
        self.state = (_LCG_A * self.state + _LCG_C) % _U32
        return self.state / _U32

    def normal(self, mu: float = 0.0, sigma: float = 1.0) -> float:
        if self._spare is not None:
            z = self._spare
            self._spare = None
            return mu + sigma * z

        u = 0.0
        v = 0.0
        while u == 0.0:
            u = self.next()
        while v == 0.0:
            v = self.next()

        mag = math.sqrt(-2.0 * math.log(u))
        z0 = mag * math.cos(2.0 * math.pi * v)
        z1 = mag * math.sin(2.0 * math.pi * v)
        self._spare = z1
        return mu + sigma * z0

    def sample(self, items: Sequence[T], n: int) -> List[T]:
        # partial Fisher-Yates from the tail, first n of the shuffled copy
        arr = list(items)
        for i in range(len(arr) - 1, 0, -1):
            j = int(math.floor(self.next() * (i + 1)))
            arr[i], arr[j] = arr[j], arr[i]
        return arr[: max(0, int(n))]
