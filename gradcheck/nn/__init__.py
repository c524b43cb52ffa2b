"""
Layers, fillers and the net container driven by the gradient checker.
"""

from gradcheck.nn.initialization import (
    ConstantFiller,
    Filler,
    GaussianFiller,
    UniformFiller,
    XavierFiller,
    get_filler,
)
from gradcheck.nn.modules import *  # noqa: F401,F403
from gradcheck.nn.modules import __all__ as _modules_all

__all__ = [
    "ConstantFiller",
    "Filler",
    "GaussianFiller",
    "UniformFiller",
    "XavierFiller",
    "get_filler",
] + _modules_all
