# utils/__init__.py
r"""Miscellaneous utility functions."""

from ._hdf5 import *
from ._requires import *
