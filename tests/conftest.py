"""
Configuration file for pytest.

Puts the project root on the Python path so that the package can be
imported without installing it, and provides shared fixtures.
"""

import os
import sys

import numpy as np
import pytest

# Add the project root directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from gradcheck.core.checks import GradientChecker  # noqa: E402


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def checker():
    return GradientChecker(stepsize=1e-2, threshold=1e-3)
