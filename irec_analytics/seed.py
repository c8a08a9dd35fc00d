"""
Deterministic Hash / Seed Utility
=================================

Everything synthesized by this package is derived from these functions, so a
project id always expands into the same records.

- hash_key: string -> unsigned 32-bit integer (FNV-1a + murmur3 finalizer)
- seeded_fraction: integer -> float in [0, 1) (splitmix64 mixing)

Adjacent seeds (seed, seed + 1, ...) produce uncorrelated fractions, which the
synthesizer relies on when it walks per-item seeds.
"""

from typing import Sequence, TypeVar

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
MASK_64 = 0xFFFFFFFFFFFFFFFF

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619

HEX_CHARS = "0123456789abcdef"


def _fmix32(h: int) -> int:
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & MASK_32
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & MASK_32
    h ^= h >> 16
    return h


def _splitmix64(x: int) -> int:
    z = (x + 0x9E3779B97F4A7C15) & MASK_64
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK_64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK_64
    return z ^ (z >> 31)


def hash_key(key: str) -> int:
    """Stable unsigned 32-bit hash of a string key"""
    h = FNV_OFFSET_BASIS
    for byte in key.encode("utf-8"):
        h = ((h ^ byte) * FNV_PRIME) & MASK_32
    return _fmix32(h)


def seeded_fraction(seed: int) -> float:
    """Deterministic pseudo-random float in [0, 1) for an integer seed"""
    # top 53 bits fill a double mantissa exactly
    return (_splitmix64(seed & MASK_64) >> 11) / float(1 << 53)


def seeded_int(seed: int, low: int, high: int) -> int:
    """Deterministic integer in the inclusive range [low, high]"""
    if high <= low:
        return low
    return low + int(seeded_fraction(seed) * (high - low + 1))


def pick(options: Sequence[T], seed: int) -> T:
    """Deterministically pick one element of a non-empty sequence"""
    return options[int(seeded_fraction(seed) * len(options))]


def weighted_index(weights: Sequence[float], seed: int) -> int:
    """
    Pick an index with probability proportional to its weight.

    Weights need not sum to 1. Falls back to index 0 when every weight is 0.
    """
    total = float(sum(w for w in weights if w > 0))
    if total <= 0:
        return 0
    target = seeded_fraction(seed) * total
    cumulative = 0.0
    for index, weight in enumerate(weights):
        if weight <= 0:
            continue
        cumulative += weight
        if target < cumulative:
            return index
    # float rounding can leave target == total
    return max(i for i, w in enumerate(weights) if w > 0)


def seeded_hex(seed: int, length: int) -> str:
    """Deterministic lowercase hex string of `length` characters"""
    chars = []
    state = seed
    while len(chars) < length:
        state = _splitmix64(state & MASK_64)
        block = state
        for _ in range(16):
            chars.append(HEX_CHARS[block & 0xF])
            block >>= 4
    return "".join(chars[:length])


def seeded_address(seed: int) -> str:
    return "0x" + seeded_hex(seed, 40)


def seeded_tx_hash(seed: int) -> str:
    return "0x" + seeded_hex(seed, 64)
