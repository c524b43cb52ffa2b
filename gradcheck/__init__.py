from gradcheck.__version__ import __version__
from gradcheck.core.blob import Blob
from gradcheck.core.checks import GradientChecker
from gradcheck.core.failures import GradientCheckError, GradientCheckFailure
from gradcheck.core.random import RandomSource
from gradcheck import nn
from gradcheck.utils.logger import set_log_level

__all__ = [
    "__version__",
    "Blob",
    "GradientChecker",
    "GradientCheckError",
    "GradientCheckFailure",
    "RandomSource",
    "nn",
    "set_log_level",
]
