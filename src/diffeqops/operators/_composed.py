# operators/_composed.py
"""Lazy products and inverses of operators."""

__all__ = [
    "ComposedOperator",
    "InvertedOperator",
]

import logging
import numpy as np

from .. import errors, utils
from ._base import (
    Capabilities,
    OperatorTemplate,
    is_operator,
    _load_group,
    _refresh_once,
)


_logger = logging.getLogger(__name__)


class ComposedOperator(OperatorTemplate):
    r"""Product of operators :math:`(\L_1\L_2\cdots\L_p)\x`, applied from
    right to left.

    Products are flat: a :class:`ComposedOperator` passed as a factor
    contributes its own factors. Use :func:`compose` to also absorb
    identities and pull scalar coefficients out of the product.

    :meth:`apply_into()` and :meth:`solve_into()` pass intermediate results
    through scratch buffers owned by the operator, one per interior stage,
    allocated on first use.

    Parameters
    ----------
    operators : OperatorTemplate
        Factors of the product. The number of columns of each factor must
        equal the number of rows of the next one.
    """

    def __init__(self, *operators):
        """Flatten the factors and check that their shapes chain."""
        if len(operators) == 0:
            raise ValueError("ComposedOperator requires at least one factor")
        factors = []
        for op in operators:
            if not is_operator(op):
                raise TypeError(f"invalid factor of type '{type(op)}'")
            if isinstance(op, ComposedOperator):
                factors.extend(op.factors)
            else:
                factors.append(op)
        for left, right in zip(factors[:-1], factors[1:]):
            if left.shape[1] != right.shape[0]:
                raise errors.DimensionMismatchError(
                    f"cannot compose operators of shape {left.shape} "
                    f"and {right.shape}"
                )
        self.__factors = tuple(factors)
        self.__caches = [None] * (len(factors) - 1)
        OperatorTemplate.__init__(self)

    def _build_capabilities(self):
        factors = self.__factors
        allsquare = all(op.issquare for op in factors)
        return Capabilities(
            isconstant=all(op.isconstant for op in factors),
            issquare=self.shape[0] == self.shape[1],
            has_adjoint=all(op.has_adjoint for op in factors),
            has_apply_into=all(op.has_apply_into for op in factors),
            has_solve=allsquare and all(op.has_solve for op in factors),
            has_solve_into=(
                allsquare and all(op.has_solve_into for op in factors)
            ),
        )

    # Properties --------------------------------------------------------------
    @property
    def factors(self) -> tuple:
        """Operators being multiplied, leftmost first."""
        return self.__factors

    @property
    def caches(self) -> tuple:
        """Scratch buffers of the interior stages (``None`` until used)."""
        return tuple(self.__caches)

    @property
    def shape(self) -> tuple:
        return (self.__factors[0].shape[0], self.__factors[-1].shape[1])

    @property
    def dtype(self):
        return np.result_type(*[op.dtype for op in self.__factors])

    @property
    def iszero(self) -> bool:
        """``True`` if any factor is zero."""
        return any(op.iszero for op in self.__factors)

    def __str__(self) -> str:
        out = [OperatorTemplate.__str__(self)]
        names = ", ".join(op.__class__.__name__ for op in self.__factors)
        out.append(f"factors: {names}")
        return "\n  ".join(out)

    # Evaluation --------------------------------------------------------------
    def _scratch(self, i: int, shape: tuple, dtype):
        """Return the scratch buffer of stage ``i``, (re)allocating it."""
        cache = self.__caches[i]
        if cache is None or cache.shape != shape or cache.dtype != dtype:
            _logger.debug(
                "allocating ComposedOperator scratch %d: %s %s",
                i,
                shape,
                dtype,
            )
            cache = self.__caches[i] = np.empty(shape, dtype=dtype)
        return cache

    def _apply(self, x):
        for op in reversed(self.__factors):
            x = op.apply(x)
        return x

    def _apply_into(self, out, x):
        factors = self.__factors
        for i in range(len(factors) - 1, 0, -1):
            op = factors[i]
            shape = (op.shape[0],) + x.shape[1:]
            cache = self._scratch(i - 1, shape, out.dtype)
            op.apply_into(cache, x)
            x = cache
        factors[0].apply_into(out, x)

    def _solve(self, x):
        for op in self.__factors:
            x = op.solve(x)
        return x

    def _solve_into(self, out, x):
        factors = self.__factors
        for i in range(len(factors) - 1):
            op = factors[i]
            cache = self._scratch(i, (op.shape[1],) + x.shape[1:], out.dtype)
            op.solve_into(cache, x)
            x = cache
        factors[-1].solve_into(out, x)

    @utils.requires("has_adjoint")
    def adjoint(self):
        """Product of the adjoints of the factors, in reverse order."""
        return ComposedOperator(
            *[op.adjoint() for op in reversed(self.__factors)]
        )

    def _refresh(self, state, parameters, t, visited):
        """Refresh each distinct factor once."""
        _refresh_once(self.__factors, state, parameters, t, visited)

    def factorize(self, method: str = None):
        """Factorize each factor if all factors are square,
        otherwise factorize the materialized product.
        """
        if all(op.issquare for op in self.__factors):
            return ComposedOperator(
                *[op.factorize(method) for op in self.__factors]
            )
        return OperatorTemplate.factorize(self, method)

    # Model persistence -------------------------------------------------------
    def _save_data(self, group):
        group.attrs["num_factors"] = len(self.__factors)
        for i, op in enumerate(self.__factors):
            op._save(group.create_group(f"factor_{i}"))

    @classmethod
    def _load_data(cls, group):
        return cls(
            *[
                _load_group(group[f"factor_{i}"])
                for i in range(int(group.attrs["num_factors"]))
            ]
        )


class InvertedOperator(OperatorTemplate):
    r"""Lazy inverse :math:`\L^{-1}\x`.

    Applying the operator solves with :math:`\L`, and solving applies
    :math:`\L`. Use :func:`inv` to simplify inverses of identities,
    inverses, scaled operators, and products.

    Parameters
    ----------
    operator : OperatorTemplate
        Square, nonzero operator with :attr:`has_solve`.
    """

    def __init__(self, operator):
        """Check that the operator can be inverted."""
        if not is_operator(operator):
            raise TypeError("operator must be an operator")
        if not operator.issquare:
            raise errors.DimensionMismatchError(
                f"only square operators can be inverted, got {operator.shape}"
            )
        if operator.iszero:
            raise errors.SingularOperatorError(
                "zero operator cannot be inverted"
            )
        if not operator.has_solve:
            raise errors.UnsupportedCapabilityError(
                f"{operator.__class__.__name__} does not support solve()"
            )
        self.__operator = operator
        OperatorTemplate.__init__(self)

    def _build_capabilities(self):
        L = self.__operator
        return Capabilities(
            isconstant=L.isconstant,
            issquare=True,
            has_adjoint=L.has_adjoint,
            has_apply_into=L.has_solve_into,
            has_solve=True,
            has_solve_into=L.has_apply_into,
        )

    @property
    def operator(self) -> OperatorTemplate:
        """Operator being inverted."""
        return self.__operator

    @property
    def shape(self) -> tuple:
        return self.__operator.shape

    @property
    def dtype(self):
        return self.__operator.dtype

    def _apply(self, x):
        return self.__operator.solve(x)

    def _apply_into(self, out, x):
        self.__operator.solve_into(out, x)

    def _solve(self, x):
        return self.__operator.apply(x)

    def _solve_into(self, out, x):
        self.__operator.apply_into(out, x)

    @utils.requires("has_adjoint")
    def adjoint(self):
        """Inverse of the adjoint."""
        return InvertedOperator(self.__operator.adjoint())

    def _refresh(self, state, parameters, t, visited):
        """Refresh the inverted operator."""
        _refresh_once([self.__operator], state, parameters, t, visited)

    def factorize(self, method: str = None):
        """Invert a factorization of the operator."""
        return InvertedOperator(self.__operator.factorize(method))

    def _save_data(self, group):
        self.__operator._save(group.create_group("operator"))

    @classmethod
    def _load_data(cls, group):
        return cls(_load_group(group["operator"]))
