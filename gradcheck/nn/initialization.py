"""
Fillers that write initial values into blobs.

Fillers are used for layer parameter initialization and by the gradient
checker for noise and data-corruption stages. Every filler draws from an
explicitly passed numpy ``Generator`` so that results are reproducible from
a seed.
"""

import numpy as np
from typing import Tuple

from gradcheck.core.blob import Blob


class Filler:
    """Base class for all fillers."""

    def fill(self, blob: Blob, generator: np.random.Generator):
        blob.data = self.sample(blob.shape, generator)

    def sample(self, shape: Tuple[int, ...], generator: np.random.Generator) -> np.ndarray:
        raise NotImplementedError("Subclasses must implement sample method")

    def get_config(self):
        return {}

    def __repr__(self):
        args = ", ".join(f"{k}={v}" for k, v in self.get_config().items())
        return f"{self.__class__.__name__}({args})"


class ConstantFiller(Filler):
    def __init__(self, value: float = 0.0):
        self.value = value

    def sample(self, shape, generator):
        return np.full(shape, self.value, dtype=np.float64)

    def get_config(self):
        return {"value": self.value}


class GaussianFiller(Filler):
    """
    Gaussian filler.

    Draws independent values from N(mean, std^2).
    """

    def __init__(self, mean: float = 0.0, std: float = 1.0):
        if std < 0:
            raise ValueError(f"Standard deviation must be non-negative, got {std}")
        self.mean = mean
        self.std = std

    def sample(self, shape, generator):
        return generator.normal(self.mean, self.std, size=shape)

    def get_config(self):
        return {"mean": self.mean, "std": self.std}


class UniformFiller(Filler):
    """
    Uniform filler.

    Draws independent values from the interval [min, max).
    """

    def __init__(self, min: float = 0.0, max: float = 1.0):
        if min > max:
            raise ValueError(f"Uniform filler needs min <= max, got [{min}, {max}]")
        self.min = min
        self.max = max

    def sample(self, shape, generator):
        return generator.uniform(self.min, self.max, size=shape)

    def get_config(self):
        return {"min": self.min, "max": self.max}


class XavierFiller(Filler):
    """
    Xavier/Glorot uniform initialization.

    Initializes weights with values drawn from a uniform distribution bounded by:
    [-a, a] where a = gain * sqrt(6 / (fan_in + fan_out))

    This helps maintain the variance of activations and gradients across layers.
    """

    def __init__(self, gain: float = 1.0):
        self.gain = gain

    def sample(self, shape, generator):
        fan_in, fan_out = _calculate_fan_in_fan_out(shape)
        limit = self.gain * np.sqrt(6.0 / (fan_in + fan_out))
        return generator.uniform(-limit, limit, size=shape)

    def get_config(self):
        return {"gain": self.gain}


def _calculate_fan_in_fan_out(shape: Tuple[int, ...]) -> Tuple[int, int]:
    """
    Calculate fan_in and fan_out for a weight array.

    For a 2D weight matrix stored as (in_features, out_features), fan_in is
    the number of input units and fan_out is the number of output units.
    A 1D array (such as a bias) counts as its own fan_in and fan_out.
    """
    if len(shape) == 0:
        return 1, 1
    if len(shape) == 1:
        return shape[0], shape[0]

    if len(shape) == 2:
        fan_in, fan_out = shape
    else:
        receptive_field_size = 1
        for dim in shape[2:]:
            receptive_field_size *= dim

        fan_in = shape[1] * receptive_field_size
        fan_out = shape[0] * receptive_field_size

    return fan_in, fan_out


def get_filler(name: str, **kwargs) -> Filler:
    """
    Get a filler by name.

    Args:
        name: Name of the filler
        **kwargs: Arguments passed to the filler constructor

    Returns:
        Filler instance
    """
    fillers = {
        "constant": ConstantFiller,
        "gaussian": GaussianFiller,
        "uniform": UniformFiller,
        "xavier": XavierFiller,
    }

    if name not in fillers:
        raise ValueError(f"Unknown filler: {name}")

    return fillers[name](**kwargs)
