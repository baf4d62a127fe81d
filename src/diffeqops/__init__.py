# __init__.py
"""Lazy linear operator algebra for differential equation solvers.

Operators are applied to and solved against NumPy vectors without
materializing dense matrices where avoidable. Scaled operators, sums,
compositions, and inverses are built lazily and refreshed in place when
their coefficients depend on time, state, or parameters.
"""

__version__ = "0.1.0"

from . import (
    errors,
    utils,
    operators,
)

from .operators import *
