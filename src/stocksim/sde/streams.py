# src/stocksim/sde/streams.py
from __future__ import annotations

from typing import Tuple

import numpy as np

_SEED_MOD = 2**64


def _entropy(seed: int) -> int:
    # SeedSequence only takes non-negative entropy
    return int(seed) % _SEED_MOD


class RandomStream:
    """
    Deterministic source of standard-normal draws.

    Built like np.random.default_rng(seed), so RandomStream.from_seed(s)
    reproduces default_rng(s) draw for draw.

    Block draws consume the generator in the same order as repeated draw()
    calls, so a (n_samples, n_steps) block is the row-by-row sequence.
    """

    def __init__(self, seed_seq: np.random.SeedSequence):
        self._gen = np.random.default_rng(seed_seq)

    @classmethod
    def from_seed(cls, seed: int) -> "RandomStream":
        return cls(np.random.SeedSequence(_entropy(seed)))

    def draw(self) -> float:
        return float(self._gen.standard_normal())

    def draws(self, shape: int | Tuple[int, ...]) -> np.ndarray:
        return self._gen.standard_normal(size=shape)


def create_streams(seed: int) -> Tuple[RandomStream, RandomStream]:
    """Stock and volatility streams, seeded with seed and seed + 1."""
    return RandomStream.from_seed(seed), RandomStream.from_seed(seed + 1)


def derive_streams(seed: int, index: int) -> Tuple[RandomStream, RandomStream]:
    """
    Stream pair for one sample (or repetition) of a run.

    Depends only on (seed, index), never on which worker asks or when.
    """
    if index < 0:
        raise ValueError("index must be non-negative")
    a = np.random.SeedSequence(_entropy(seed), spawn_key=(int(index),))
    b = np.random.SeedSequence(_entropy(seed + 1), spawn_key=(int(index),))
    return RandomStream(a), RandomStream(b)


__all__ = ["RandomStream", "create_streams", "derive_streams"]
