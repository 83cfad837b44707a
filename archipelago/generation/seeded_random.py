"""Deterministic pseudo-randomness derived from string hashing.

Every value is a pure function of (seed, salt, range); there is no mutable
stream, so the same inputs give the same float on every run and platform.
"""

import math


def string_hash(text: str) -> int:
    """Polynomial rolling hash ``h = h * 31 + ord(c)`` wrapped to signed 32 bits, magnitude taken."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def _format_bound(value: float) -> str:
    # Integral bounds hash as "3", not "3.0".
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


class SeededRandom:
    """Range-mapped values from ``string_hash(seed + salt + min + max)``.

    ``resolution`` is the number of distinct steps across the range.
    """

    def __init__(self, seed: str, resolution: int = 1000) -> None:
        self.seed = seed
        self.resolution = resolution

    def value(self, lo: float, hi: float, salt: str = "") -> float:
        if math.isnan(lo) or math.isnan(hi):
            return (lo + hi) / 2.0
        h = string_hash(self.seed + salt + _format_bound(lo) + _format_bound(hi))
        t = (h % self.resolution) / self.resolution
        return lo + t * (hi - lo)

    def integer(self, lo: int, hi: int, salt: str = "") -> int:
        """Integer in ``[lo, hi]`` inclusive."""
        return min(hi, int(math.floor(self.value(lo, hi + 0.99, salt))))

    def __call__(self, lo: float, hi: float, salt: str = "") -> float:
        return self.value(lo, hi, salt)


class CoarseSeededRandom(SeededRandom):
    """Cheaper variant for far regions: bounds are left out of the hash and only 100 steps are used."""

    def __init__(self, seed: str) -> None:
        super().__init__(seed, resolution=100)

    def value(self, lo: float, hi: float, salt: str = "") -> float:
        h = string_hash(self.seed + salt)
        return lo + (h % self.resolution) / self.resolution * (hi - lo)


def region_seed(region: tuple[int, int], world_seed: str = "") -> str:
    rx, rz = region
    key = f"{rx}_{rz}"
    return f"{world_seed}:{key}" if world_seed else key
