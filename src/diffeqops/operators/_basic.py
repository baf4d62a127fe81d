# operators/_basic.py
"""Structural identity and null operators, which store no data."""

__all__ = [
    "IdentityOperator",
    "NullOperator",
    "identity_like",
    "null_like",
]

import numbers
import numpy as np
import scipy.sparse as sparse

from .. import errors
from ._base import Capabilities, OperatorTemplate


class _StructuralOperator(OperatorTemplate):
    """Base class for square operators that are defined by their size."""

    def __init__(self, size):
        """Set the size, given directly or as a sample vector."""
        if np.ndim(size) > 0:
            size = np.shape(size)[0]
        if (
            isinstance(size, bool)
            or not isinstance(size, numbers.Integral)
            or size <= 0
        ):
            raise ValueError("size must be a positive integer")
        self.__size = int(size)
        OperatorTemplate.__init__(self)

    @property
    def size(self) -> int:
        """Length of the vectors the operator acts on."""
        return self.__size

    @property
    def shape(self) -> tuple:
        return (self.__size, self.__size)

    @property
    def dtype(self):
        return np.dtype(bool)

    def __eq__(self, other):
        if not isinstance(other, OperatorTemplate):
            return NotImplemented
        return other.__class__ is self.__class__ and other.size == self.size

    def __hash__(self):
        return hash((self.__class__.__name__, self.__size))

    def adjoint(self):
        """The operator is self-adjoint."""
        return self

    def _save_data(self, group):
        group.attrs["size"] = self.__size

    @classmethod
    def _load_data(cls, group):
        return cls(int(group.attrs["size"]))


class IdentityOperator(_StructuralOperator):
    r"""Identity operator :math:`\I\x = \x`.

    Parameters
    ----------
    size : int or ndarray
        Dimension of the operator, or a vector whose length is the dimension.

    Examples
    --------
    >>> I = IdentityOperator(3)
    >>> I.apply(np.arange(3.0))
    array([0., 1., 2.])
    """

    def _build_capabilities(self):
        return Capabilities(
            isconstant=True,
            issquare=True,
            has_adjoint=True,
            has_apply_into=True,
            has_solve=True,
            has_solve_into=True,
        )

    def _apply(self, x):
        return x.copy()

    def _apply_into(self, out, x):
        np.copyto(out, x)

    _solve = _apply
    _solve_into = _apply_into

    def to_matrix(self) -> np.ndarray:
        return np.eye(self.size, dtype=bool)

    def to_sparse(self):
        return sparse.csr_array(sparse.identity(self.size, dtype=bool))

    def opnorm(self, p=2):
        if p == "fro":
            return np.sqrt(self.size)
        return 1

    def factorize(self, method: str = None):
        """The identity needs no factorization."""
        return self


class NullOperator(_StructuralOperator):
    r"""Zero operator :math:`\mathbf{0}\x = \mathbf{0}`.

    The null operator cannot be inverted.

    Parameters
    ----------
    size : int or ndarray
        Dimension of the operator, or a vector whose length is the dimension.
    """

    def _build_capabilities(self):
        return Capabilities(
            isconstant=True,
            issquare=True,
            has_adjoint=True,
            has_apply_into=True,
            has_solve=False,
            has_solve_into=False,
        )

    @property
    def iszero(self) -> bool:
        return True

    def _apply(self, x):
        return np.zeros_like(x)

    def _apply_into(self, out, x):
        out.fill(0)

    def to_matrix(self) -> np.ndarray:
        return np.zeros(self.shape, dtype=bool)

    def to_sparse(self):
        return sparse.csr_array(self.shape, dtype=bool)

    def opnorm(self, p=2):
        return 0

    def factorize(self, method: str = None):
        raise errors.SingularOperatorError(
            "NullOperator cannot be factorized"
        )


def _check_square(op):
    if not op.issquare:
        raise errors.DimensionMismatchError(
            f"expected square operator, got shape {op.shape}"
        )


def identity_like(op) -> IdentityOperator:
    """Identity operator of the same size as the square operator ``op``."""
    _check_square(op)
    return IdentityOperator(op.shape[0])


def null_like(op) -> NullOperator:
    """Null operator of the same size as the square operator ``op``."""
    _check_square(op)
    return NullOperator(op.shape[0])
