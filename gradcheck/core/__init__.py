from gradcheck.core.blob import Blob
from gradcheck.core.checks import GradientChecker
from gradcheck.core.failures import GradientCheckError, GradientCheckFailure
from gradcheck.core.random import RandomSource

__all__ = [
    "Blob",
    "GradientChecker",
    "GradientCheckError",
    "GradientCheckFailure",
    "RandomSource",
]
