# operators/__init__.py
"""Operator classes, combinators, and trait queries."""

from ._base import *
from ._scalar import *
from ._array import *
from ._basic import *
from ._scaled import *
from ._added import *
from ._composed import *
from ._algebra import *
from ._traits import *
