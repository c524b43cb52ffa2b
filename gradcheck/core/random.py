"""
Explicit seeded random state shared by the gradient checker and the layers
it drives.
"""

import numpy as np
from typing import Optional


class RandomSource:
    """
    Holder of a numpy ``Generator`` that can be reset to a known seed.

    Stochastic layers draw from the source they are bound to instead of the
    global numpy state, so reseeding the source before a forward pass
    reproduces exactly the same draws.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._generator = np.random.default_rng(seed)

    def reseed(self, seed: Optional[int] = None):
        """Reset the generator; with no argument the initial seed is reused."""
        if seed is None:
            seed = self.seed
        self._generator = np.random.default_rng(seed)

    @property
    def generator(self) -> np.random.Generator:
        return self._generator

    def __repr__(self) -> str:
        return f"RandomSource(seed={self.seed})"
