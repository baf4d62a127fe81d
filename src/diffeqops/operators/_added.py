# operators/_added.py
"""Lazy sums of operators."""

__all__ = [
    "AddedOperator",
]

import logging
import operator
import functools
import numpy as np
import scipy.sparse as sparse

from .. import errors, utils
from ._base import (
    Capabilities,
    OperatorTemplate,
    is_operator,
    _load_group,
    _refresh_once,
)


_logger = logging.getLogger(__name__)


class AddedOperator(OperatorTemplate):
    r"""Sum of operators :math:`(\L_1 + \cdots + \L_p)\x`.

    Sums are flat: an :class:`AddedOperator` passed as a term contributes its
    own terms, so the result never contains a nested sum. The terms are
    not copied.

    :meth:`apply_into()` writes the first term directly into the destination
    and accumulates the other terms through one scratch buffer owned by the
    operator. The buffer is allocated on first use and reused as long as the
    destination has the same shape and data type. Terms that are currently
    zero are skipped.

    Parameters
    ----------
    operators : OperatorTemplate
        Terms of the sum (at least one), all of the same shape.
    cache : ndarray or None
        Preallocated scratch buffer for :meth:`apply_into()`.

    Examples
    --------
    >>> A = ArrayOperator(np.random.random((4, 4)))
    >>> S = AddedOperator(A, AddedOperator(A, IdentityOperator(4)))
    >>> len(S.terms)
    3
    """

    def __init__(self, *operators, cache=None):
        """Flatten and validate the terms."""
        if len(operators) == 0:
            raise ValueError("AddedOperator requires at least one term")
        terms = []
        for op in operators:
            if not is_operator(op):
                raise TypeError(f"invalid term of type '{type(op)}'")
            if isinstance(op, AddedOperator):
                terms.extend(op.terms)
            else:
                terms.append(op)
        shape = terms[0].shape
        for op in terms[1:]:
            if op.shape != shape:
                raise errors.DimensionMismatchError(
                    f"cannot add operators of shape {shape} and {op.shape}"
                )
        if cache is not None and not isinstance(cache, np.ndarray):
            raise TypeError("cache must be a NumPy array or None")

        self.__terms = tuple(terms)
        self.__cache = cache
        OperatorTemplate.__init__(self)

    def _build_capabilities(self):
        terms = self.__terms
        return Capabilities(
            isconstant=all(op.isconstant for op in terms),
            issquare=terms[0].issquare,
            has_adjoint=all(op.has_adjoint for op in terms),
            has_apply_into=all(op.has_apply_into for op in terms),
            has_solve=False,
            has_solve_into=False,
        )

    # Properties --------------------------------------------------------------
    @property
    def terms(self) -> tuple:
        """Operators being summed (never an :class:`AddedOperator`)."""
        return self.__terms

    @property
    def cache(self):
        """Scratch buffer for :meth:`apply_into()`, or ``None`` if unset."""
        return self.__cache

    @property
    def isunset(self) -> bool:
        """``True`` if the scratch buffer has not been allocated yet."""
        return self.__cache is None

    @property
    def shape(self) -> tuple:
        return self.__terms[0].shape

    @property
    def dtype(self):
        return np.result_type(*[op.dtype for op in self.__terms])

    @property
    def iszero(self) -> bool:
        """``True`` if every term is zero."""
        return all(op.iszero for op in self.__terms)

    def __str__(self) -> str:
        out = [OperatorTemplate.__str__(self)]
        names = ", ".join(op.__class__.__name__ for op in self.__terms)
        out.append(f"terms: {names}")
        return "\n  ".join(out)

    # Evaluation --------------------------------------------------------------
    def _apply(self, x):
        out = None
        for op in self.__terms:
            if op.iszero:
                continue
            y = op.apply(x)
            out = y if out is None else out + y
        if out is None:
            dtype = np.result_type(self.dtype, x.dtype)
            out = np.zeros((self.shape[0],) + x.shape[1:], dtype=dtype)
        return out

    def _scratch(self, out):
        """Return the scratch buffer, (re)allocating it to match ``out``."""
        cache = self.__cache
        if (
            cache is None
            or cache.shape != out.shape
            or cache.dtype != out.dtype
        ):
            _logger.debug(
                "allocating AddedOperator scratch %s %s", out.shape, out.dtype
            )
            self.__cache = np.empty_like(out)
        return self.__cache

    def _apply_into(self, out, x):
        first, *others = self.__terms
        if first.iszero:
            out.fill(0)
        else:
            first.apply_into(out, x)
        for op in others:
            if op.iszero:
                continue
            cache = self._scratch(out)
            op.apply_into(cache, x)
            out += cache

    @utils.requires("has_adjoint")
    def adjoint(self):
        """Sum of the adjoints of the terms.

        A scratch buffer of the same shape is allocated for the adjoint if
        this operator is square and its buffer has been allocated.
        """
        cache = None
        if self.issquare and self.__cache is not None:
            cache = np.empty_like(self.__cache)
        return AddedOperator(
            *[op.adjoint() for op in self.__terms], cache=cache
        )

    def __neg__(self):
        return AddedOperator(*[-op for op in self.__terms])

    def _refresh(self, state, parameters, t, visited):
        """Refresh each distinct term once."""
        _refresh_once(self.__terms, state, parameters, t, visited)

    # Conversion --------------------------------------------------------------
    def __getitem__(self, key):
        dtype = np.result_type(self.dtype, np.float64)
        return functools.reduce(
            operator.add,
            [np.asarray(op[key]).astype(dtype) for op in self.__terms],
        )

    def to_matrix(self) -> np.ndarray:
        dtype = np.result_type(self.dtype, np.float64)
        return functools.reduce(
            operator.add,
            [op.to_matrix().astype(dtype, copy=False) for op in self.__terms],
        )

    def to_sparse(self):
        dtype = np.result_type(self.dtype, np.float64)
        return functools.reduce(
            operator.add,
            [
                sparse.csr_array(op.to_sparse(), dtype=dtype)
                for op in self.__terms
            ],
        )

    # Model persistence -------------------------------------------------------
    def _save_data(self, group):
        group.attrs["num_terms"] = len(self.__terms)
        for i, op in enumerate(self.__terms):
            op._save(group.create_group(f"term_{i}"))

    @classmethod
    def _load_data(cls, group):
        return cls(
            *[
                _load_group(group[f"term_{i}"])
                for i in range(int(group.attrs["num_terms"]))
            ]
        )
