from typing import Tuple

import numpy as np


class DRNG:
    """Deterministic Random Number Generator wrapper.

    One per match; tests pin the seed to get a fixed spawn sequence.
    """

    def __init__(self, seed: int):
        self.seed = seed
        self.g = np.random.Generator(np.random.PCG64(seed))

    def bernoulli(self, p: float) -> bool:
        """Return True with probability p."""
        return bool(self.g.random() < p)

    def uniform(self, a: float, b: float) -> float:
        """Return a random float in [a, b)."""
        return float(self.g.uniform(a, b))

    def scatter(self, x: float, z: float, spread: float) -> Tuple[float, float]:
        """Offset (x, z) by [0, spread) on both axes."""
        if spread <= 0:
            return (x, z)
        return (x + self.uniform(0.0, spread), z + self.uniform(0.0, spread))
