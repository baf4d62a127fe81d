# operators/_algebra.py
"""Combinators that build scaled, added, composed, and inverted operators.

Each combinator inspects the kinds of its arguments and simplifies where an
algebraic identity applies:

* ``scale(b, scale(a, L))`` is ``scale(a*b, L)``.
* ``add(add(A, B), C)`` is a single sum of three terms.
* ``compose(a*A, b*B)`` is ``scale(a*b, compose(A, B))``; identities are
  dropped from products and square products with a null factor are null.
* ``inv(inv(L))`` is ``L``, ``inv(a*L)`` is ``scale(1/a, inv(L))``, and
  ``inv(A @ B)`` is ``inv(B) @ inv(A)`` when both factors are square.
"""

__all__ = [
    "scale",
    "add",
    "compose",
    "inv",
    "ldiv",
    "rdiv",
]

import numpy as np
import scipy.sparse as sparse

from .. import errors
from ._base import is_operator
from ._scalar import ScalarCoefficient, is_scalar
from ._array import ArrayOperator
from ._basic import IdentityOperator, NullOperator
from ._scaled import ScaledOperator
from ._added import AddedOperator
from ._composed import ComposedOperator, InvertedOperator


def scale(coefficient, operator):
    """Multiply an operator by a scalar.

    Parameters
    ----------
    coefficient : number or ScalarCoefficient
        Scaling factor. Coefficients are copied.
    operator : OperatorTemplate
        Operator to scale.

    Returns
    -------
    ScaledOperator
    """
    if not is_operator(operator):
        raise TypeError("scale() requires an operator")
    return ScaledOperator(coefficient, operator)


def _as_operator(obj, reference):
    """Convert a summand to an operator.

    Scalars become multiples of the identity (``reference`` must be square)
    and matrices are wrapped in :class:`ArrayOperator`.
    """
    if is_operator(obj):
        return obj
    if is_scalar(obj):
        if not reference.issquare:
            raise errors.DimensionMismatchError(
                "scalars can only be added to square operators, "
                f"got shape {reference.shape}"
            )
        return ScaledOperator(obj, IdentityOperator(reference.shape[0]))
    if sparse.issparse(obj) or isinstance(obj, np.ndarray):
        return ArrayOperator(obj)
    raise TypeError(f"cannot add object of type '{type(obj)}' to an operator")


def add(*operands):
    """Sum operators, matrices, and (for square operators) scalars.

    Parameters
    ----------
    operands : OperatorTemplate, ndarray, scipy.sparse matrix, or number
        Summands. At least one must be an operator.

    Returns
    -------
    AddedOperator
    """
    if len(operands) == 0:
        raise ValueError("add() requires at least one operand")
    reference = next((op for op in operands if is_operator(op)), None)
    if reference is None:
        raise TypeError("add() requires at least one operator")
    return AddedOperator(*[_as_operator(op, reference) for op in operands])


def compose(*operators):
    """Multiply operators, applied from right to left.

    Parameters
    ----------
    operators : OperatorTemplate or number
        Factors, leftmost first. Scalars and the coefficients of scaled
        factors are collected into one coefficient for the product.

    Returns
    -------
    OperatorTemplate
        The product, simplified.
    """
    if len(operators) == 0:
        raise ValueError("compose() requires at least one operand")

    # Flatten nested products and pull out scalars.
    coefficient = None
    factors = []
    stack = list(reversed(operators))
    while stack:
        op = stack.pop()
        if is_scalar(op):
            if coefficient is None:
                coefficient = ScalarCoefficient.wrap(op)
            else:
                coefficient = coefficient * op
            continue
        if not is_operator(op):
            raise TypeError(f"cannot compose object of type '{type(op)}'")
        if isinstance(op, ComposedOperator):
            stack.extend(reversed(op.factors))
        elif isinstance(op, ScaledOperator):
            stack.extend([op.operator, op.coefficient])
        else:
            factors.append(op)
    if not factors:
        raise TypeError("compose() requires at least one operator")

    for left, right in zip(factors[:-1], factors[1:]):
        if left.shape[1] != right.shape[0]:
            raise errors.DimensionMismatchError(
                f"cannot compose operators of shape {left.shape} "
                f"and {right.shape}"
            )
    shape = (factors[0].shape[0], factors[-1].shape[1])

    if shape[0] == shape[1] and any(
        isinstance(op, NullOperator) for op in factors
    ):
        return NullOperator(shape[0])

    factors = [op for op in factors if not isinstance(op, IdentityOperator)]
    if not factors:
        result = IdentityOperator(shape[0])
    elif len(factors) == 1:
        result = factors[0]
    else:
        result = ComposedOperator(*factors)

    if coefficient is not None:
        result = ScaledOperator(coefficient, result)
    return result


def _check_invertible(operator):
    if operator.iszero:
        raise errors.SingularOperatorError(
            f"{operator.__class__.__name__} is zero and cannot be inverted"
        )
    if not operator.issquare:
        raise errors.DimensionMismatchError(
            f"only square operators can be inverted, got {operator.shape}"
        )


def _null_product(null, other, left: bool):
    """Return ``null`` for ``null / other`` or ``other \\ null``."""
    _check_invertible(other)
    first, second = (null, other) if left else (other, null)
    if first.shape[1] != second.shape[0]:
        raise errors.DimensionMismatchError(
            f"cannot compose operators of shape {first.shape} "
            f"and {second.shape}"
        )
    return null


def inv(operator):
    """Inverse of an operator (or reciprocal of a scalar).

    Parameters
    ----------
    operator : OperatorTemplate or number
        Square operator to invert.

    Returns
    -------
    OperatorTemplate or ScalarCoefficient
        Lazy inverse, simplified.

    Raises
    ------
    diffeqops.errors.SingularOperatorError
        If the operator (or scalar) is zero.
    diffeqops.errors.DimensionMismatchError
        If the operator is not square.
    """
    if is_scalar(operator):
        return ScalarCoefficient.wrap(operator).inv()
    if not is_operator(operator):
        raise TypeError(f"cannot invert object of type '{type(operator)}'")
    if isinstance(operator, IdentityOperator):
        return operator
    _check_invertible(operator)
    if isinstance(operator, InvertedOperator):
        return operator.operator
    if isinstance(operator, ScaledOperator):
        return ScaledOperator(
            operator.coefficient.inv(), inv(operator.operator)
        )
    if isinstance(operator, ComposedOperator) and all(
        op.issquare for op in operator.factors
    ):
        return compose(*[inv(op) for op in reversed(operator.factors)])
    return InvertedOperator(operator)


def rdiv(A, B):
    """Right division ``A / B``, the product of ``A`` and the inverse of ``B``.

    ``A / I`` is ``A``. If ``A`` is null, ``A / B`` is ``A`` for any
    nonzero square ``B``, even one without :attr:`has_solve`.
    """
    if isinstance(A, NullOperator) and is_operator(B):
        return _null_product(A, B, left=True)
    return compose(A, inv(B))


def ldiv(A, B):
    """Left division ``A \\ B``.

    If ``B`` is an array, solve ``A y = B`` for ``y``. If ``B`` is an operator,
    return the product of the inverse of ``A`` and ``B``; ``I \\ B`` is ``B``
    and ``A \\ 0`` is ``0``.
    """
    if isinstance(B, np.ndarray):
        return A.solve(B)
    if isinstance(B, NullOperator) and is_operator(A):
        return _null_product(B, A, left=False)
    return compose(inv(A), B)
