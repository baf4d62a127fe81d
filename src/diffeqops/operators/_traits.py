# operators/_traits.py
"""Free-function interface for generic solver code.

Every function accepts an operator, a :class:`ScalarCoefficient`, or a plain
number (treated as a constant coefficient), so solver code can query and
apply a coefficient without checking what kind of object it holds.
"""

__all__ = [
    "size",
    "eltype",
    "isconstant",
    "iszero",
    "issquare",
    "has_adjoint",
    "has_apply_into",
    "has_solve",
    "has_solve_into",
    "apply",
    "apply_into",
    "solve",
    "solve_into",
    "adjoint",
    "refresh",
]

from ._base import is_operator
from ._scalar import ScalarCoefficient, is_scalar


def _operand(op):
    if is_operator(op) or isinstance(op, ScalarCoefficient):
        return op
    if is_scalar(op):
        return ScalarCoefficient(op)
    raise TypeError(f"expected operator or scalar, got '{type(op)}'")


# Traits ======================================================================
def size(op) -> tuple:
    """Dimensions ``(m, n)`` of an operator, ``()`` for scalars."""
    return _operand(op).shape


def eltype(op):
    """NumPy data type of an operator or scalar."""
    return _operand(op).dtype


def isconstant(op) -> bool:
    """``True`` if refreshing never changes ``op``."""
    return _operand(op).isconstant


def iszero(op) -> bool:
    """``True`` if ``op`` is currently zero."""
    return _operand(op).iszero


def issquare(op) -> bool:
    """``True`` if ``op`` maps n-vectors to n-vectors (scalars are square)."""
    return _operand(op).issquare


def has_adjoint(op) -> bool:
    return _operand(op).has_adjoint


def has_apply_into(op) -> bool:
    return _operand(op).has_apply_into


def has_solve(op) -> bool:
    return _operand(op).has_solve


def has_solve_into(op) -> bool:
    return _operand(op).has_solve_into


# Evaluation ==================================================================
def apply(op, x):
    """Apply ``op`` to ``x`` and return a new array."""
    return _operand(op).apply(x)


def apply_into(out, op, x):
    """Apply ``op`` to ``x``, writing the result into ``out``."""
    return _operand(op).apply_into(out, x)


def solve(op, x):
    """Solve ``op y = x`` for ``y`` and return ``y``."""
    return _operand(op).solve(x)


def solve_into(out, op, x):
    """Solve ``op y = x`` for ``y``, writing ``y`` into ``out``."""
    return _operand(op).solve_into(out, x)


def adjoint(op):
    """Adjoint of ``op``."""
    return _operand(op).adjoint()


def refresh(op, state=None, parameters=None, t=None):
    """Update the coefficients of ``op`` in place and return ``op``.

    Plain numbers are returned unchanged.
    """
    if is_operator(op) or isinstance(op, ScalarCoefficient):
        return op.refresh(state, parameters, t)
    _operand(op)
    return op
