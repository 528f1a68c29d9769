"""Post timestamps, optionally blurred with gaussian noise."""

from __future__ import annotations

import math
import random
import time
from typing import Optional


class TimestampPolicy:
    """
    Produces the stamp stored with a post.

    When obfuscation is requested the stamp is `now` plus a normal deviate
    with standard deviation `sigma`, drawn with the Box-Muller transform from
    two uniform samples in the open interval (0, 1). The result may fall
    before or after `now`.
    """

    def __init__(self, sigma: float, rng: Optional[random.Random] = None) -> None:
        self.sigma = sigma
        self._rng = rng or random.Random()

    def _open_unit(self) -> float:
        # random() lies in [0, 1); redraw the 0.0 so log() stays finite.
        value = self._rng.random()
        while value == 0.0:
            value = self._rng.random()
        return value

    def gaussian_offset(self) -> int:
        x1 = self._open_unit()
        x2 = self._open_unit()
        return round(self.sigma * math.sqrt(-2.0 * math.log(x1)) * math.cos(2.0 * math.pi * x2))

    def effective_stamp(self, now: Optional[int] = None, obfuscate: bool = False) -> int:
        if now is None:
            now = int(time.time())
        if not obfuscate:
            return now
        return now + self.gaussian_offset()
