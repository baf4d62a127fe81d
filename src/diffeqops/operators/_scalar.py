# operators/_scalar.py
"""Scalar coefficients that may depend on state, parameters, and time."""

__all__ = [
    "ScalarCoefficient",
    "is_scalar",
]

import copy
import numbers
import logging
import operator
import numpy as np

from .. import errors


_logger = logging.getLogger(__name__)


def is_scalar(obj) -> bool:
    """Return ``True`` if ``obj`` can be used as a scaling factor, i.e., it
    is a number, a zero-dimensional array, or a :class:`ScalarCoefficient`.
    """
    if isinstance(obj, ScalarCoefficient):
        return True
    if isinstance(obj, np.ndarray):
        return obj.ndim == 0 and np.issubdtype(obj.dtype, np.number)
    return isinstance(obj, (numbers.Number, np.number, np.bool_))


def _divide(numerator, denominator):
    """Divide, raising SingularOperatorError on an exactly zero divisor."""
    if denominator == 0:
        raise errors.SingularOperatorError("division by a zero coefficient")
    return numerator / denominator


def _reverse(func):
    """Swap the arguments of a binary function."""
    return lambda a, b: func(b, a)


class ScalarCoefficient:
    r"""Scalar :math:`\alpha` that can be refreshed between solver steps.

    The update function is called by :meth:`refresh()` and must have the
    signature

    .. code-block:: python

       update_func(oldval, state, parameters, t) -> newval

    If ``update_func`` is ``None`` (default), the coefficient is constant.

    Arithmetic with numbers or other coefficients produces a new
    coefficient. If an operand is not constant, the result keeps private
    copies of the operands and recombines them every time it is refreshed,
    so time dependence survives the arithmetic. Multiplying an array
    applies the coefficient; multiplying an operator gives a
    :class:`diffeqops.operators.ScaledOperator`.

    Parameters
    ----------
    value : number
        Current value of the coefficient.
    update_func : callable or None
        Rule for refreshing the value.

    Examples
    --------
    >>> alpha = ScalarCoefficient(1.0, update_func=lambda a, u, p, t: t)
    >>> alpha.refresh(None, None, 5.0).value
    5.0
    >>> alpha * np.ones(3)
    array([5., 5., 5.])
    """

    # Defer to this class in mixed NumPy expressions such as ``u * alpha``.
    __array_ufunc__ = None

    def __init__(self, value, update_func=None):
        """Store the value and (optional) update rule."""
        if isinstance(value, ScalarCoefficient):
            raise TypeError(
                "use ScalarCoefficient.wrap() to copy a ScalarCoefficient"
            )
        if isinstance(value, np.ndarray) and value.ndim == 0:
            value = value[()]
        if not is_scalar(value):
            raise TypeError(
                f"coefficient value must be a number, not '{type(value)}'"
            )
        if update_func is not None and not callable(update_func):
            raise TypeError("update_func must be callable or None")
        self._value = value
        self.__update_func = update_func

    @classmethod
    def wrap(cls, value):
        """Return a new, independently owned coefficient for ``value``.

        Coefficients are copied (keeping their update rule); numbers and
        zero-dimensional arrays are wrapped as constant coefficients.
        """
        if isinstance(value, ScalarCoefficient):
            return value.copy()
        return cls(value)

    # Properties --------------------------------------------------------------
    @property
    def value(self):
        """Current numerical value of the coefficient."""
        return self._value

    @property
    def update_func(self):
        """Update rule ``(oldval, state, parameters, t) -> newval``,
        or ``None`` for a constant coefficient.
        """
        return self.__update_func

    @property
    def shape(self) -> tuple:
        """Scalars have an empty shape."""
        return ()

    @property
    def dtype(self):
        """NumPy data type of the value."""
        return np.result_type(self._value)

    @property
    def isconstant(self) -> bool:
        """``True`` if :meth:`refresh()` never changes the value."""
        return self.__update_func is None

    @property
    def iszero(self) -> bool:
        """``True`` if the current value is exactly zero."""
        return self._value == 0

    issquare = True
    has_adjoint = True
    has_apply_into = True

    @property
    def has_solve(self) -> bool:
        """``True`` unless the current value is zero."""
        return not self.iszero

    has_solve_into = has_solve

    def __str__(self) -> str:
        kind = "constant" if self.isconstant else "time-dependent"
        return f"{self.__class__.__name__}({self._value!r}, {kind})"

    __repr__ = __str__

    # Refreshing --------------------------------------------------------------
    def refresh(self, state=None, parameters=None, t=None):
        """Replace the value with ``update_func(value, state, parameters, t)``.

        This is a no-op for constant coefficients.

        Returns
        -------
        self : ScalarCoefficient
        """
        if self.__update_func is not None:
            self._value = self.__update_func(self._value, state, parameters, t)
            _logger.debug("refreshed coefficient at t=%s: %r", t, self._value)
        return self

    def copy(self):
        """Return a copy of the coefficient using :func:`copy.deepcopy()`."""
        return copy.deepcopy(self)

    # Evaluation --------------------------------------------------------------
    def apply(self, x):
        """Return ``value * x`` (a new array if ``x`` is an array)."""
        return self._value * x

    def solve(self, x):
        """Return ``x / value``.

        Raises
        ------
        diffeqops.errors.SingularOperatorError
            If the value is zero.
        """
        return _divide(x, self._value)

    def apply_into(self, out, x):
        """Write ``value * x`` into ``out`` and return ``out``."""
        if np.shape(out) != np.shape(x):
            raise errors.DimensionMismatchError(
                f"out.shape = {np.shape(out)} != x.shape = {np.shape(x)}"
            )
        return np.multiply(x, self._value, out=out)

    def solve_into(self, out, x):
        """Write ``x / value`` into ``out`` and return ``out``."""
        if self.iszero:
            raise errors.SingularOperatorError(
                "division by a zero coefficient"
            )
        if np.shape(out) != np.shape(x):
            raise errors.DimensionMismatchError(
                f"out.shape = {np.shape(out)} != x.shape = {np.shape(x)}"
            )
        return np.divide(x, self._value, out=out)

    def lmul(self, B: np.ndarray) -> np.ndarray:
        """Scale the array ``B`` in place, ``B *= value``."""
        B *= self._value
        return B

    def axpy(self, X: np.ndarray, Y: np.ndarray) -> np.ndarray:
        """Accumulate ``Y += value * X`` in place and return ``Y``."""
        if np.shape(X) != np.shape(Y):
            raise errors.DimensionMismatchError(
                f"X.shape = {np.shape(X)} != Y.shape = {np.shape(Y)}"
            )
        Y += self._value * X
        return Y

    # Derived coefficients ----------------------------------------------------
    def inv(self):
        """Reciprocal coefficient ``1 / self``."""
        return _combine(_divide, ScalarCoefficient(1), self)

    def conj(self):
        """Complex-conjugated coefficient."""
        return _combine(np.conj, self)

    adjoint = conj

    # Magic methods -----------------------------------------------------------
    def _binary(self, other, func):
        if isinstance(other, ScalarCoefficient):
            return _combine(func, self, other)
        if is_scalar(other):
            return _combine(func, self, ScalarCoefficient(other))
        return NotImplemented

    def __add__(self, other):
        return self._binary(other, operator.add)

    def __radd__(self, other):
        return self._binary(other, _reverse(operator.add))

    def __sub__(self, other):
        return self._binary(other, operator.sub)

    def __rsub__(self, other):
        return self._binary(other, _reverse(operator.sub))

    def __mul__(self, other):
        if isinstance(other, np.ndarray) and other.ndim > 0:
            return self.apply(other)
        return self._binary(other, operator.mul)

    def __rmul__(self, other):
        if isinstance(other, np.ndarray) and other.ndim > 0:
            return self.apply(other)
        return self._binary(other, _reverse(operator.mul))

    def __truediv__(self, other):
        if isinstance(other, np.ndarray) and other.ndim > 0:
            return self._value / other
        return self._binary(other, _divide)

    def __rtruediv__(self, other):
        if isinstance(other, np.ndarray) and other.ndim > 0:
            return self.solve(other)
        return self._binary(other, _reverse(_divide))

    def __neg__(self):
        return _combine(operator.neg, self)

    def __pos__(self):
        return self

    def __abs__(self):
        return abs(self._value)

    def __eq__(self, other):
        if isinstance(other, ScalarCoefficient):
            return self._value == other.value
        if is_scalar(other):
            return self._value == other
        return NotImplemented

    __hash__ = None

    def __float__(self):
        return float(self._value)

    def __complex__(self):
        return complex(self._value)

    def __bool__(self):
        return bool(self._value)


class _DerivedCoefficient(ScalarCoefficient):
    """Coefficient computed from other coefficients.

    Refreshing it refreshes each (privately owned) operand and recombines
    the operand values with ``func``.
    """

    def __init__(self, func, *operands):
        self.__func = func
        self.__operands = operands
        ScalarCoefficient.__init__(
            self, func(*[c.value for c in operands])
        )

    @property
    def isconstant(self) -> bool:
        return all(c.isconstant for c in self.__operands)

    @property
    def update_func(self):
        """Rule that refreshes copies of the current operands and recombines
        them, or ``None`` if every operand is constant.

        Calling the rule does not change this coefficient.
        """
        if self.isconstant:
            return None
        func, operands = self.__func, self.__operands

        def _update(oldval, state, parameters, t):
            values = [
                c.copy().refresh(state, parameters, t).value for c in operands
            ]
            return func(*values)

        return _update

    def refresh(self, state=None, parameters=None, t=None):
        for c in self.__operands:
            c.refresh(state, parameters, t)
        self._value = self.__func(*[c.value for c in self.__operands])
        return self


def _combine(func, *operands):
    """Apply ``func`` to the values of coefficients, keeping time
    dependence if any operand has it.
    """
    if all(c.isconstant for c in operands):
        return ScalarCoefficient(func(*[c.value for c in operands]))
    return _DerivedCoefficient(func, *[c.copy() for c in operands])
