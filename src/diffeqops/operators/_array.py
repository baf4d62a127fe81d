# operators/_array.py
"""Operators backed by a dense, sparse, or matrix-free array."""

__all__ = [
    "ArrayOperator",
]

import logging
import warnings
import numpy as np
import scipy.linalg as la
import scipy.sparse as sparse
import scipy.sparse.linalg as spla

from .. import errors, utils
from ._base import Capabilities, OperatorTemplate


_logger = logging.getLogger(__name__)


def _kind(A) -> str:
    """Kind of matrix: dense, sparse, or matrix-free."""
    if isinstance(A, spla.LinearOperator):
        return "matrix-free"
    if sparse.issparse(A):
        return "sparse"
    return "dense"


def _conjugate_transpose(A):
    """Adjoint of a dense, sparse, or matrix-free array."""
    if isinstance(A, spla.LinearOperator):
        return A.adjoint()
    return A.conj().T


class ArrayOperator(OperatorTemplate):
    r"""Operator :math:`\L(\x) = \A\x` for a matrix :math:`\A`.

    The matrix is stored by reference, not copied. It may be a dense NumPy
    array, a :mod:`scipy.sparse` matrix or array, or a matrix-free
    :class:`scipy.sparse.linalg.LinearOperator`.

    Square dense and sparse matrices can be inverted through
    :meth:`solve()`. The factorization is computed the first time it is
    needed, reused for every later solve, and discarded when
    :meth:`refresh()` replaces the matrix.

    Parameters
    ----------
    A : (m, n) ndarray, scipy.sparse matrix, or LinearOperator
        Matrix to wrap.
    update_func : callable or None
        Rule for refreshing the matrix, with the signature

        .. code-block:: python

           update_func(A, state, parameters, t) -> A_new

        If ``None`` (default), the operator is constant.
    factorization : str or None
        Factorization used by :meth:`solve()`. Dense matrices accept
        ``"lu"``, ``"cholesky"``, ``"qr"``, and ``"svd"``; sparse matrices
        accept ``"lu"``. If ``None``, use :attr:`default_factorization`.

    Examples
    --------
    >>> A = ArrayOperator(np.array([[2.0, 0.0], [0.0, 4.0]]))
    >>> A.solve(np.array([2.0, 4.0]))
    array([1., 1.])
    """

    default_factorization = "lu"
    _DENSE_FACTORIZATIONS = ("lu", "cholesky", "qr", "svd")
    _SPARSE_FACTORIZATIONS = ("lu",)

    def __init__(self, A, update_func=None, factorization=None):
        """Set the matrix, update rule, and factorization method."""
        if update_func is not None and not callable(update_func):
            raise TypeError("update_func must be callable or None")
        self.__A = self._validate_matrix(A)
        self.__update_func = update_func

        if factorization is None:
            factorization = self.default_factorization
        if self.__ismatrixfree:
            options = ()
        elif sparse.issparse(self.__A):
            options = self._SPARSE_FACTORIZATIONS
        else:
            options = self._DENSE_FACTORIZATIONS
        if options and factorization not in options:
            raise ValueError(
                f"invalid factorization '{factorization}', "
                f"options: {', '.join(options)}"
            )
        self.__factorization = factorization
        self.__solver = None
        self.__set_zero()

        OperatorTemplate.__init__(self)

    @staticmethod
    def _validate_matrix(A):
        if isinstance(A, spla.LinearOperator) or sparse.issparse(A):
            if len(A.shape) != 2:
                raise ValueError("matrix must be two-dimensional")
            return A
        A = np.asarray(A)
        if A.ndim != 2:
            raise ValueError("matrix must be two-dimensional")
        return A

    def __set_zero(self):
        if self.__ismatrixfree:
            self.__iszero = False
        elif sparse.issparse(self.__A):
            self.__iszero = self.__A.count_nonzero() == 0
        else:
            self.__iszero = not np.any(self.__A)

    def _build_capabilities(self) -> Capabilities:
        invertible = self.shape[0] == self.shape[1] and not self.__ismatrixfree
        return Capabilities(
            isconstant=self.__update_func is None,
            issquare=self.shape[0] == self.shape[1],
            has_adjoint=True,
            has_apply_into=isinstance(self.__A, np.ndarray),
            has_solve=invertible,
            has_solve_into=invertible,
        )

    # Properties --------------------------------------------------------------
    @property
    def matrix(self):
        """Wrapped matrix (not a copy)."""
        return self.__A

    @property
    def update_func(self):
        """Rule ``(A, state, parameters, t) -> A_new``, or ``None``."""
        return self.__update_func

    @property
    def factorization(self) -> str:
        """Name of the factorization used by :meth:`solve()`."""
        return self.__factorization

    @property
    def isfactorized(self) -> bool:
        """``True`` if a factorization is currently cached."""
        return self.__solver is not None

    @property
    def __ismatrixfree(self) -> bool:
        return isinstance(self.__A, spla.LinearOperator)

    @property
    def shape(self) -> tuple:
        """Dimensions of the wrapped matrix."""
        return tuple(self.__A.shape)

    @property
    def dtype(self):
        """Data type of the wrapped matrix."""
        return np.dtype(self.__A.dtype)

    @property
    def iszero(self) -> bool:
        """``True`` if every entry of the matrix is zero."""
        return self.__iszero

    def __str__(self) -> str:
        out = [OperatorTemplate.__str__(self)]
        if sparse.issparse(self.__A):
            out.append(f"format: {self.__A.format} (nnz = {self.__A.nnz})")
        elif self.__ismatrixfree:
            out.append("format: matrix-free")
        else:
            out.append("format: dense")
        return "\n  ".join(out)

    # Factorizations ----------------------------------------------------------
    def _factor(self):
        """Return a function that solves with the cached factorization,
        computing the factorization if necessary.
        """
        if self.__solver is not None:
            return self.__solver

        A, method = self.__A, self.__factorization
        _logger.debug("computing %s factorization of %s", method, self.shape)

        if sparse.issparse(A):
            try:
                lu = spla.splu(A.tocsc())
            except RuntimeError as ex:
                raise errors.SingularOperatorError(
                    "matrix is exactly singular"
                ) from ex
            self.__solver = lu.solve
            return self.__solver

        if method == "lu":
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", la.LinAlgWarning)
                lu_piv = la.lu_factor(A)
            if np.any(np.diag(lu_piv[0]) == 0):
                raise errors.SingularOperatorError(
                    "matrix is exactly singular"
                )
            self.__lu = lu_piv

            def _solver(b):
                return la.lu_solve(lu_piv, b)

        elif method == "cholesky":
            try:
                cho = la.cho_factor(A)
            except la.LinAlgError as ex:
                raise errors.SingularOperatorError(
                    "matrix is not positive definite"
                ) from ex

            def _solver(b):
                return la.cho_solve(cho, b)

        elif method == "qr":
            Q, R = la.qr(A)
            if np.any(np.diag(R) == 0):
                raise errors.SingularOperatorError(
                    "matrix is exactly singular"
                )

            def _solver(b):
                return la.solve_triangular(R, Q.conj().T @ b)

        elif method == "svd":
            U, s, Vh = la.svd(A)
            if s[-1] == 0:
                raise errors.SingularOperatorError(
                    "matrix is exactly singular"
                )

            def _solver(b):
                s_ = s.reshape((-1,) + (1,) * (np.ndim(b) - 1))
                return Vh.conj().T @ ((U.conj().T @ b) / s_)

        self.__solver = _solver
        return self.__solver

    def factorize(self, method: str = None):
        """Return an operator that shares the matrix and has its
        factorization already computed.

        Parameters
        ----------
        method : str or None
            Factorization to compute. If ``None``, use the factorization
            of this operator.

        Returns
        -------
        ArrayOperator
        """
        self._check_solvable("solve")
        if method is None:
            method = self.__factorization
        out = ArrayOperator(self.__A, self.__update_func, method)
        out._factor()
        return out

    # Evaluation --------------------------------------------------------------
    def _apply(self, x):
        return np.asarray(self.__A @ x)

    def _apply_into(self, out, x):
        np.matmul(self.__A, x, out=out)

    def _solve(self, x):
        return self._factor()(x)

    def _solve_into(self, out, x):
        solver = self._factor()
        if self.__factorization == "lu" and isinstance(self.__A, np.ndarray):
            np.copyto(out, x)
            y = la.lu_solve(self.__lu, out, overwrite_b=True)
            if y is not out:
                np.copyto(out, y)
            return
        np.copyto(out, solver(x))

    @utils.requires("has_adjoint")
    def adjoint(self):
        """Conjugate transpose operator. A refresh rule, if any, is carried
        over so that the adjoint stays the adjoint after refreshing.
        """
        func = None
        if self.__update_func is not None:
            update = self.__update_func

            def func(AH, state, parameters, t):
                A = update(_conjugate_transpose(AH), state, parameters, t)
                return _conjugate_transpose(A)

        return ArrayOperator(
            _conjugate_transpose(self.__A),
            func,
            factorization=(
                None if self.__ismatrixfree else self.__factorization
            ),
        )

    def _refresh(self, state, parameters, t, visited):
        """Replace the matrix with ``update_func(A, state, parameters, t)``
        and discard the cached factorization.

        The new matrix must have the same shape and the same kind (dense,
        sparse, or matrix-free) as the old one. This is a no-op for constant
        operators.
        """
        if self.__update_func is None:
            return
        A = self._validate_matrix(
            self.__update_func(self.__A, state, parameters, t)
        )
        if tuple(A.shape) != self.shape:
            raise errors.DimensionMismatchError(
                f"update_func() returned matrix of shape {A.shape}, "
                f"expected {self.shape}"
            )
        if _kind(A) != _kind(self.__A):
            raise TypeError(
                f"update_func() returned {_kind(A)} matrix, "
                f"expected {_kind(self.__A)} matrix"
            )
        self.__A = A
        self.__set_zero()
        if self.__solver is not None:
            _logger.debug("discarding %s factorization", self.__factorization)
            self.__solver = None

    # Conversion --------------------------------------------------------------
    def to_matrix(self) -> np.ndarray:
        """Dense copy of the matrix."""
        if sparse.issparse(self.__A):
            return self.__A.toarray()
        if self.__ismatrixfree:
            return OperatorTemplate.to_matrix(self)
        return self.__A.copy()

    def to_sparse(self):
        """Sparse copy of the matrix in CSR format."""
        if sparse.issparse(self.__A):
            return sparse.csr_array(self.__A)
        return OperatorTemplate.to_sparse(self)

    def __getitem__(self, key):
        """Get entries of the wrapped matrix."""
        if isinstance(self.__A, np.ndarray):
            return self.__A[key]
        return OperatorTemplate.__getitem__(self, key)

    def opnorm(self, p=2):
        """Operator norm induced by the vector ``p``-norm."""
        if sparse.issparse(self.__A) and p in (1, np.inf, "fro"):
            return spla.norm(self.__A, ord=p)
        if isinstance(self.__A, np.ndarray):
            return np.linalg.norm(self.__A, ord=p)
        return OperatorTemplate.opnorm(self, p)

    # Model persistence -------------------------------------------------------
    def _save_data(self, group):
        if self.__ismatrixfree:
            raise TypeError("matrix-free LinearOperator cannot be saved")
        utils.save_matrix(group, "matrix", self.__A)
        group.attrs["factorization"] = self.__factorization

    @classmethod
    def _load_data(cls, group):
        return cls(
            utils.load_matrix(group, "matrix"),
            factorization=str(group.attrs["factorization"]),
        )
