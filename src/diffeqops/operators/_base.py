# operators/_base.py
"""Abstract base class and capability record for operators."""

__all__ = [
    "Capabilities",
    "OperatorTemplate",
    "is_operator",
    "load_operator",
]

import os
import abc
import copy
import warnings
import dataclasses
import numpy as np
import scipy.sparse as sparse
import matplotlib.pyplot as plt

from .. import errors, utils
from ._scalar import ScalarCoefficient, is_scalar


# Registry of operator classes by name, used when loading from HDF5.
_OPERATOR_CLASSES = {}


@dataclasses.dataclass(frozen=True)
class Capabilities:
    """Structural traits of an operator, fixed at construction.

    Composite operators compute their record once from the records of their
    children. Traits that depend on the current value of a coefficient
    (``iszero``, and ``has_solve`` of scaled operators) are not stored here;
    they are evaluated by the operator when queried.

    Attributes
    ----------
    isconstant : bool
        ``refresh()`` never changes the action of the operator.
    issquare : bool
        The operator maps vectors of length n to vectors of length n.
    has_adjoint : bool
        ``adjoint()`` is available.
    has_apply_into : bool
        ``apply_into()`` is available.
    has_solve : bool
        ``solve()`` is available.
    has_solve_into : bool
        ``solve_into()`` is available.
    """

    isconstant: bool = True
    issquare: bool = True
    has_adjoint: bool = False
    has_apply_into: bool = False
    has_solve: bool = False
    has_solve_into: bool = False


def is_operator(obj) -> bool:
    """Return ``True`` if ``obj`` is an operator object."""
    return isinstance(obj, OperatorTemplate)


class OperatorTemplate(abc.ABC):
    r"""Template for linear operators :math:`\L:\CC^n\to\CC^m`.

    An operator is applied to vectors (or to the columns of a matrix)
    without necessarily storing a matrix. Child classes implement
    :attr:`shape`, :attr:`dtype`, :meth:`_build_capabilities()`, and
    :meth:`_apply()`, and as many of :meth:`_apply_into()`,
    :meth:`_solve()`, :meth:`_solve_into()`, and :meth:`adjoint()` as they
    support. The public methods check capabilities and dimensions before any
    computation takes place, so errors never leave outputs partially written.

    Operators combine with ``+``, ``-``, ``*``, ``@``, and ``/`` into lazy
    sums, scalings, compositions, and inverses; see
    :mod:`diffeqops.operators._algebra`.

    Notes
    -----
    Operators that own scratch buffers or refreshable coefficients are not
    safe to apply or refresh from several threads at once. Use :meth:`copy()`
    to give each thread its own operator.
    """

    # Defer to operators in mixed NumPy expressions such as ``M + op``.
    __array_ufunc__ = None

    def __init__(self):
        """Compute the capability record."""
        self.__capabilities = self._build_capabilities()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        _OPERATOR_CLASSES[cls.__name__] = cls

    @abc.abstractmethod
    def _build_capabilities(self) -> Capabilities:  # pragma: no cover
        """Construct the capability record from the operator's children."""
        raise NotImplementedError

    # Properties --------------------------------------------------------------
    @property
    @abc.abstractmethod
    def shape(self) -> tuple:  # pragma: no cover
        """Dimensions ``(m, n)``: the operator maps n-vectors to m-vectors."""
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def dtype(self):  # pragma: no cover
        """NumPy data type of the operator's action."""
        raise NotImplementedError

    @property
    def capabilities(self) -> Capabilities:
        """Structural traits computed at construction."""
        return self.__capabilities

    @property
    def isconstant(self) -> bool:
        """``True`` if :meth:`refresh()` never changes the operator."""
        return self.__capabilities.isconstant

    @property
    def iszero(self) -> bool:
        """``True`` if the operator is currently the zero map."""
        return False

    @property
    def issquare(self) -> bool:
        """``True`` if the operator maps n-vectors to n-vectors."""
        return self.__capabilities.issquare

    @property
    def has_adjoint(self) -> bool:
        """``True`` if :meth:`adjoint()` is available."""
        return self.__capabilities.has_adjoint

    @property
    def has_apply_into(self) -> bool:
        """``True`` if :meth:`apply_into()` is available."""
        return self.__capabilities.has_apply_into

    @property
    def has_solve(self) -> bool:
        """``True`` if :meth:`solve()` is available."""
        return self.__capabilities.has_solve

    @property
    def has_solve_into(self) -> bool:
        """``True`` if :meth:`solve_into()` is available."""
        return self.__capabilities.has_solve_into

    @property
    def H(self):
        """Adjoint (conjugate transpose) operator."""
        return self.adjoint()

    def __str__(self) -> str:
        """String representation: class name + dimensions + traits."""
        out = [self.__class__.__name__]
        out.append(f"shape: {self.shape}")
        out.append(f"dtype: {self.dtype}")
        out.append(f"constant: {self.isconstant}")
        return "\n  ".join(out)

    def __repr__(self) -> str:
        """Unique ID + string representation."""
        return f"<{self.__class__.__name__} object at {hex(id(self))}>\n{self}"

    # Dimension checks --------------------------------------------------------
    def _check_input(self, x, n: int, label: str = "x"):
        """Ensure ``x`` is a vector or matrix with ``n`` rows."""
        x = np.asarray(x)
        if x.ndim not in (1, 2) or x.shape[0] != n:
            raise errors.DimensionMismatchError(
                f"{label}.shape = {x.shape} is not aligned with "
                f"operator of shape {self.shape}"
            )
        return x

    def _check_output(self, out, x, m: int):
        """Ensure ``out`` is an array of shape ``(m,) + x.shape[1:]``
        that does not overlap ``x``.
        """
        if not isinstance(out, np.ndarray):
            raise TypeError("out must be a NumPy array")
        if out.shape != (m,) + x.shape[1:]:
            raise errors.DimensionMismatchError(
                f"out.shape = {out.shape} != {(m,) + x.shape[1:]}"
            )
        if np.may_share_memory(out, x):
            raise ValueError("out must not share memory with x")

    # Evaluation --------------------------------------------------------------
    def apply(self, x: np.ndarray) -> np.ndarray:
        """Apply the operator to a vector or to the columns of a matrix.

        Parameters
        ----------
        x : (n,) or (n, k) ndarray
            Vector or matrix of column vectors.

        Returns
        -------
        out : (m,) or (m, k) ndarray
            Newly allocated result; never aliases ``x``.
        """
        x = self._check_input(x, self.shape[1])
        return self._apply(x)

    @abc.abstractmethod
    def _apply(self, x: np.ndarray) -> np.ndarray:  # pragma: no cover
        """Apply the operator to a validated input."""
        raise NotImplementedError

    @utils.requires("has_apply_into")
    def apply_into(self, out: np.ndarray, x: np.ndarray) -> np.ndarray:
        """Apply the operator to ``x``, writing the result into ``out``.

        Parameters
        ----------
        out : (m,) or (m, k) ndarray
            Caller-owned destination. Must not overlap ``x``.
        x : (n,) or (n, k) ndarray
            Vector or matrix of column vectors.

        Returns
        -------
        out : (m,) or (m, k) ndarray
            The destination array.
        """
        x = self._check_input(x, self.shape[1])
        self._check_output(out, x, self.shape[0])
        self._apply_into(out, x)
        return out

    def _apply_into(self, out, x):  # pragma: no cover
        raise NotImplementedError

    def _check_solvable(self, method: str):
        if self.iszero:
            raise errors.SingularOperatorError(
                f"{self.__class__.__name__} is zero and cannot be inverted"
            )
        if not getattr(self, f"has_{method}"):
            raise errors.UnsupportedCapabilityError(
                f"{self.__class__.__name__}.{method}() requires has_{method}"
            )

    def solve(self, x: np.ndarray) -> np.ndarray:
        """Solve ``L y = x`` for ``y``.

        Parameters
        ----------
        x : (m,) or (m, k) ndarray
            Right-hand side vector or matrix of column vectors.

        Returns
        -------
        y : (n,) or (n, k) ndarray
            Newly allocated solution.

        Raises
        ------
        diffeqops.errors.SingularOperatorError
            If the operator is zero or singular.
        diffeqops.errors.UnsupportedCapabilityError
            If the operator cannot be inverted (see :attr:`has_solve`).
        """
        self._check_solvable("solve")
        x = self._check_input(x, self.shape[0])
        return self._solve(x)

    def _solve(self, x):  # pragma: no cover
        raise NotImplementedError

    def solve_into(self, out: np.ndarray, x: np.ndarray) -> np.ndarray:
        """Solve ``L y = x`` for ``y``, writing ``y`` into ``out``.

        Parameters
        ----------
        out : (n,) or (n, k) ndarray
            Caller-owned destination. Must not overlap ``x``.
        x : (m,) or (m, k) ndarray
            Right-hand side vector or matrix of column vectors.

        Returns
        -------
        out : (n,) or (n, k) ndarray
            The destination array.
        """
        self._check_solvable("solve_into")
        x = self._check_input(x, self.shape[0])
        self._check_output(out, x, self.shape[1])
        self._solve_into(out, x)
        return out

    def _solve_into(self, out, x):  # pragma: no cover
        raise NotImplementedError

    @utils.requires("has_adjoint")
    def adjoint(self):  # pragma: no cover
        """Adjoint (conjugate transpose) operator."""
        raise NotImplementedError

    def refresh(self, state=None, parameters=None, t=None):
        """Update time-, state-, or parameter-dependent coefficients in place.

        Parameters
        ----------
        state : ndarray or None
            Current state of the calling solver.
        parameters : object or None
            Parameters of the calling solver.
        t : float or None
            Current time.

        Returns
        -------
        self : OperatorTemplate

        Notes
        -----
        An operator that appears several times inside a sum or product, for
        example ``L`` in ``L + L`` or in ``(A @ L) + L``, is refreshed once.
        """
        self._refresh(state, parameters, t, {id(self)})
        return self

    def _refresh(self, state, parameters, t, visited: set):
        """Refresh the operator's own data and its children.

        ``visited`` holds the ids of the operators refreshed so far in this
        call; pass it to :func:`_refresh_once` for the children.
        """
        pass

    # Conversion --------------------------------------------------------------
    def to_matrix(self) -> np.ndarray:
        """Materialize the operator as a dense ``(m, n)`` array."""
        dtype = np.result_type(self.dtype, np.float64)
        return self.apply(np.eye(self.shape[1], dtype=dtype))

    def to_sparse(self) -> sparse.csr_array:
        """Materialize the operator as a :class:`scipy.sparse.csr_array`."""
        return sparse.csr_array(self.to_matrix())

    def __getitem__(self, key):
        """Get entries of the materialized operator."""
        return self.to_matrix()[key]

    def opnorm(self, p=2):
        """Operator norm induced by the vector ``p``-norm."""
        return np.linalg.norm(self.to_matrix(), ord=p)

    def factorize(self, method: str = None):
        """Return an equivalent operator with a precomputed factorization,
        so that repeated :meth:`solve()` calls are cheap.

        The default implementation materializes the operator, so the result
        does not follow later coefficient refreshes.

        Parameters
        ----------
        method : str or None
            Factorization, ``"lu"``, ``"cholesky"``, ``"qr"``, or ``"svd"``.
            If ``None``, use :attr:`ArrayOperator.default_factorization`.
        """
        from ._array import ArrayOperator

        return ArrayOperator(self.to_matrix()).factorize(method)

    def spy(self, ax=None, **kwargs):
        """Plot the sparsity pattern of the materialized operator.

        Parameters
        ----------
        ax : matplotlib.Axes or None
            Axes to draw on. If ``None`` (default), make a new figure.
        kwargs
            Passed to :meth:`matplotlib.axes.Axes.spy()`.

        Returns
        -------
        ax : matplotlib.Axes
        """
        if ax is None:
            ax = plt.figure().add_subplot(111)
        kwargs.setdefault("markersize", 2)
        ax.spy(self.to_sparse(), **kwargs)
        ax.set_title(f"{self.__class__.__name__} {self.shape}")
        return ax

    # Algebra -----------------------------------------------------------------
    def __pos__(self):
        return self

    def __neg__(self):
        from ._algebra import scale

        return scale(-1, self)

    def __add__(self, other):
        from ._algebra import add

        if is_operator(other) or _is_addable(other):
            return add(self, other)
        return NotImplemented

    def __radd__(self, other):
        from ._algebra import add

        if _is_addable(other):
            return add(other, self)
        return NotImplemented

    def __sub__(self, other):
        from ._algebra import add

        if is_operator(other) or _is_addable(other):
            return add(self, -other)
        return NotImplemented

    def __rsub__(self, other):
        from ._algebra import add

        if _is_addable(other):
            return add(other, -self)
        return NotImplemented

    def __mul__(self, other):
        from ._algebra import compose, scale

        if is_scalar(other):
            return scale(other, self)
        if isinstance(other, np.ndarray):
            return self.apply(other)
        if is_operator(other):
            return compose(self, other)
        return NotImplemented

    def __rmul__(self, other):
        from ._algebra import scale

        if is_scalar(other):
            return scale(other, self)
        return NotImplemented

    def __matmul__(self, other):
        from ._algebra import compose

        if isinstance(other, np.ndarray):
            return self.apply(other)
        if is_operator(other):
            return compose(self, other)
        return NotImplemented

    def __truediv__(self, other):
        from ._algebra import rdiv, scale

        if is_scalar(other):
            return scale(ScalarCoefficient.wrap(other).inv(), self)
        if is_operator(other):
            return rdiv(self, other)
        return NotImplemented

    def __rtruediv__(self, other):
        from ._algebra import inv, scale

        if is_scalar(other):
            return scale(other, inv(self))
        return NotImplemented

    # Model persistence -------------------------------------------------------
    def copy(self):
        """Return a copy of the operator using :func:`copy.deepcopy()`.

        The copy owns its own coefficients and scratch buffers.
        """
        return copy.deepcopy(self)

    def _save(self, group) -> None:
        """Write the class name and the operator data to an HDF5 group."""
        meta = group.create_dataset("meta", shape=(0,))
        meta.attrs["class"] = self.__class__.__name__
        self._save_data(group)

    def _save_data(self, group) -> None:  # pragma: no cover
        """Write the operator data to an HDF5 group."""
        raise NotImplementedError

    @classmethod
    def _load_data(cls, group):  # pragma: no cover
        """Construct an operator from data written by :meth:`_save_data()`."""
        raise NotImplementedError

    def save(self, savefile: str, overwrite: bool = False) -> None:
        """Save the operator to an HDF5 file.

        Update rules (functions) cannot be saved; operators loaded from the
        file are constant, with the coefficient values current at saving.

        Parameters
        ----------
        savefile : str
            Path of the file to save the operator in.
        overwrite : bool
            If ``True``, overwrite the file if it already exists. If ``False``
            (default), raise a ``FileExistsError`` if the file already exists.
        """
        if not self.isconstant:
            warnings.warn(
                "update rules are not saved, the loaded operator "
                "will be constant",
                errors.DiffEqOpsWarning,
            )
        with utils.hdf5_savehandle(savefile, overwrite) as hf:
            self._save(hf)

    @classmethod
    def load(cls, loadfile: str):
        """Load an operator from an HDF5 file.

        Parameters
        ----------
        loadfile : str
            Path to the file where the operator was stored via :meth:`save()`.
        """
        with utils.hdf5_loadhandle(loadfile) as hf:
            ClassName = hf["meta"].attrs["class"]
            if cls is not OperatorTemplate and ClassName != cls.__name__:
                raise TypeError(
                    f"file '{loadfile}' contains '{ClassName}' "
                    f"object, use '{ClassName}.load()'"
                )
            return _load_group(hf)

    # Verification ------------------------------------------------------------
    def verify(self, plot: bool = False, *, ntests: int = 4, k: int = 5):
        """Verify consistency between the shape, the capabilities, and the
        implemented methods.

        This method checks that :meth:`apply()` returns arrays of the right
        shape, that :meth:`apply_into()` agrees with :meth:`apply()`, that
        :meth:`adjoint()` passes the dot product test, that :meth:`solve()`
        inverts :meth:`apply()`, and that :meth:`copy()`, :meth:`save()`,
        and :meth:`load()` preserve the action of the operator.

        Parameters
        ----------
        plot : bool
            If ``True``, plot the relative errors of the adjoint and solve
            checks for each random test vector.
            If ``False`` (default), print a report of the relative errors.
        ntests : int
            Number of random test vectors.
        k : int
            Number of columns in the random test matrix.

        Raises
        ------
        diffeqops.errors.VerificationError
            If any check fails.
        """
        m, n = self.shape
        outtype = np.result_type(self.dtype, np.float64)

        def _relerr(a, b):
            scale = max(np.linalg.norm(b), np.finfo(float).tiny)
            return np.linalg.norm(a - b) / scale

        # Verify apply() - - - - - - - - - - - - - - - - - - - - - - - - - - -
        X = np.random.standard_normal((n, k))
        x = X[:, 0].copy()
        out = self.apply(x)
        if not isinstance(out, np.ndarray) or out.shape != (m,):
            raise errors.VerificationError(
                "apply(x) must return array of shape (m,) "
                "when x.shape = (n,) and shape = (m, n)"
            )
        if out is x or np.may_share_memory(out, x):
            raise errors.VerificationError("apply(x) must not alias x")
        out = self.apply(X)
        if not isinstance(out, np.ndarray) or out.shape != (m, k):
            raise errors.VerificationError(
                "apply(X) must return array of shape (m, k) "
                "when X.shape = (n, k) and shape = (m, n)"
            )
        print("apply() is consistent with shape")

        # Verify apply_into() - - - - - - - - - - - - - - - - - - - - - - - - -
        if self.has_apply_into:
            for _ in range(2):
                out = np.full(m, np.nan, dtype=outtype)
                self.apply_into(out, x)
                if not np.allclose(out, self.apply(x)):
                    raise errors.VerificationError(
                        "apply_into(out, x) not consistent with apply(x)"
                    )
            print("apply_into() is consistent with apply()")
        else:
            print("apply_into() not available")

        # Verify adjoint() - - - - - - - - - - - - - - - - - - - - - - - - - -
        adjoint_errors = []
        if self.has_adjoint:
            adj = self.adjoint()
            if adj.shape != (n, m):
                raise errors.VerificationError(
                    "adjoint().shape must be (n, m) when shape = (m, n)"
                )
            for _ in range(ntests):
                x = np.random.standard_normal(n)
                y = np.random.standard_normal(m)
                lhs = np.vdot(y, self.apply(x))
                rhs = np.vdot(adj.apply(y), x)
                adjoint_errors.append(_relerr(np.array(lhs), np.array(rhs)))
            if max(adjoint_errors) > 1e-8:
                raise errors.VerificationError(
                    "<y, apply(x)> != <adjoint().apply(y), x>"
                )
            print("adjoint() passes the dot product test")
        else:
            print("adjoint() not available")

        # Verify solve() - - - - - - - - - - - - - - - - - - - - - - - - - - -
        solve_errors = []
        if self.has_solve and not self.iszero:
            for _ in range(ntests):
                x = np.random.standard_normal(n)
                solve_errors.append(_relerr(self.solve(self.apply(x)), x))
            if max(solve_errors) > 1e-6:
                raise errors.VerificationError(
                    "solve(apply(x)) != x for an invertible operator"
                )
            print("solve() inverts apply()")
            if self.has_solve_into:
                b = self.apply(x)
                out = np.full(n, np.nan, dtype=np.result_type(outtype, b))
                self.solve_into(out, b)
                if not np.allclose(out, self.solve(b)):
                    raise errors.VerificationError(
                        "solve_into(out, x) not consistent with solve(x)"
                    )
                print("solve_into() is consistent with solve()")
        else:
            print("solve() not available")

        if plot:
            ax = plt.figure().add_subplot(111)
            if adjoint_errors:
                ax.semilogy(adjoint_errors, ".-", label="adjoint")
            if solve_errors:
                ax.semilogy(solve_errors, ".-", label="solve")
            ax.set_xlabel("test")
            ax.set_ylabel("relative error")
            ax.legend(loc="best")
        else:
            for label, errs in (
                ("adjoint()", adjoint_errors),
                ("solve()", solve_errors),
            ):
                for i, err in enumerate(errs):
                    print(f"  {label} test {i}\terror = {err:.4e}")

        # Verify copy() - - - - - - - - - - - - - - - - - - - - - - - - - - - -
        out = self.copy()
        if out is self:
            raise errors.VerificationError("self.copy() is self")
        if out.__class__ is not self.__class__:
            raise errors.VerificationError(
                "type(self.copy()) is not type(self)"
            )
        if out.shape != self.shape:
            raise errors.VerificationError("self.copy().shape != self.shape")
        for _ in range(ntests):
            x = np.random.standard_normal(n)
            if not np.allclose(out.apply(x), self.apply(x)):
                raise errors.VerificationError(
                    "self.copy().apply() not consistent with self.apply()"
                )
        print("copy() preserves the results of apply()")

        # Verify save()/load() - - - - - - - - - - - - - - - - - - - - - - - -
        tempfile = "_operatorverification.h5"
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", errors.DiffEqOpsWarning)
                self.save(tempfile, overwrite=True)
            out = self.load(tempfile)
        except (TypeError, NotImplementedError) as ex:
            print(f"save() and/or load() not available ({ex})")
        else:
            if out.__class__ is not self.__class__:
                raise errors.VerificationError(
                    "save()/load() does not preserve object type"
                )
            if out.shape != self.shape:
                raise errors.VerificationError(
                    "save()/load() does not preserve shape"
                )
            for _ in range(ntests):
                x = np.random.standard_normal(n)
                if not np.allclose(out.apply(x), self.apply(x)):
                    raise errors.VerificationError(
                        "save()/load() does not preserve the result of apply()"
                    )
            print("save()/load() preserves the results of apply()")
        finally:
            if os.path.isfile(tempfile):
                os.remove(tempfile)


def _is_addable(obj) -> bool:
    """Return ``True`` if ``obj`` can be added to an operator: a scalar
    (added as a multiple of the identity) or a matrix.
    """
    if is_scalar(obj):
        return True
    if sparse.issparse(obj):
        return True
    return isinstance(obj, np.ndarray) and obj.ndim == 2


def _refresh_once(operators, state, parameters, t, visited: set):
    """Refresh each operator whose id is not yet in ``visited``."""
    for op in operators:
        if id(op) not in visited:
            visited.add(id(op))
            op._refresh(state, parameters, t, visited)


def _load_group(group):
    """Construct an operator from an HDF5 group written by ``_save()``."""
    ClassName = str(group["meta"].attrs["class"])
    if ClassName not in _OPERATOR_CLASSES:
        raise errors.LoadfileFormatError(
            f"unknown operator class '{ClassName}'"
        )
    return _OPERATOR_CLASSES[ClassName]._load_data(group)


def load_operator(loadfile: str):
    """Load any operator saved with :meth:`OperatorTemplate.save()`.

    Parameters
    ----------
    loadfile : str or h5py File/Group handle
        File (or open HDF5 group) to load from.
    """
    return OperatorTemplate.load(loadfile)
