# operators/test_composed.py
"""Tests for operators._composed."""

import pytest
import numpy as np

import diffeqops

from . import _random_matrix
from .test_base import _TestOperatorTemplate


_module = diffeqops.operators._composed


class TestComposedOperator(_TestOperatorTemplate):
    """Test operators._composed.ComposedOperator with square factors."""

    Operator = _module.ComposedOperator

    def get_operator(self, n):
        return self.Operator(
            diffeqops.ArrayOperator(_random_matrix(n)),
            diffeqops.ArrayOperator(_random_matrix(n)),
        )

    def test_init(self, n=5):
        """Test __init__(), flattening, and the shape checks."""
        A, B, C = [
            diffeqops.ArrayOperator(_random_matrix(n)) for _ in range(3)
        ]
        op = self.Operator(self.Operator(A, B), C)
        assert op.factors == (A, B, C)
        assert self.Operator(A, self.Operator(B, C)).factors == (A, B, C)
        assert op.shape == (n, n)
        assert op.isconstant
        assert op.has_solve
        assert op.has_solve_into
        assert not op.iszero
        assert "factors: ArrayOperator, ArrayOperator, ArrayOperator" in str(
            op
        )

        with pytest.raises(ValueError) as ex:
            self.Operator()
        assert ex.value.args[0] == (
            "ComposedOperator requires at least one factor"
        )

        with pytest.raises(TypeError) as ex:
            self.Operator(A, np.eye(n))
        assert ex.value.args[0] == (
            "invalid factor of type '<class 'numpy.ndarray'>'"
        )

        R = diffeqops.ArrayOperator(_random_matrix(n + 1, n))
        with pytest.raises(diffeqops.errors.DimensionMismatchError) as ex:
            self.Operator(A, R)
        assert ex.value.args[0] == (
            f"cannot compose operators of shape {(n, n)} "
            f"and {(n + 1, n)}"
        )

        assert self.Operator(A, diffeqops.NullOperator(n)).iszero

    def test_apply_solve(self, n=6, k=2):
        """Factors are applied right to left and solved left to right."""
        MA, MB, MC = [_random_matrix(n) for _ in range(3)]
        A, B, C = [diffeqops.ArrayOperator(M) for M in (MA, MB, MC)]
        op = self.Operator(A, B, C)
        u = np.random.random(n)
        assert np.allclose(op.apply(u), MA @ (MB @ (MC @ u)))
        assert np.allclose(op.solve(u), np.linalg.solve(MA @ MB @ MC, u))

        out = np.full(n, np.nan)
        op.solve_into(out, u)
        assert np.allclose(out, op.solve(u))
        U = np.random.random((n, k))
        out = np.full((n, k), np.nan)
        op.solve_into(out, U)
        assert np.allclose(out, op.solve(U))

    def test_apply_into_cache(self, n=5):
        """In-place application reuses its intermediate buffers."""
        A, B, C = [
            diffeqops.ArrayOperator(_random_matrix(n)) for _ in range(3)
        ]
        op = self.Operator(A, B, C)
        u = np.random.random(n)
        out1, out2 = np.empty(n), np.empty(n)
        op.apply_into(out1, u)
        caches = op.caches
        assert len(caches) == 2
        assert all(c is not None for c in caches)
        op.apply_into(out2, u)
        assert all(
            c1 is c2 for c1, c2 in zip(caches, op.caches)
        )
        assert np.all(out1 == out2)
        assert np.allclose(out1, op.apply(u))

    def test_adjoint_reversed(self, n=4):
        """The adjoint multiplies the adjoints in reverse order."""
        A = diffeqops.ArrayOperator(_random_matrix(n))
        B = diffeqops.ArrayOperator(_random_matrix(n))
        adj = self.Operator(A, B).adjoint()
        assert isinstance(adj, self.Operator)
        assert np.allclose(adj.to_matrix(), (A.matrix @ B.matrix).T)

    def test_refresh(self, n=5):
        """Refreshing a product refreshes every factor."""
        M = _random_matrix(n)
        A = diffeqops.ArrayOperator(M, update_func=lambda B, u, p, t: t * M)
        op = self.Operator(A, A)
        assert not op.isconstant
        assert op.refresh(t=2.0) is op
        u = np.random.random(n)
        assert np.allclose(op.apply(u), 4 * M @ (M @ u))

        # Rules that depend on the old matrix are applied once per refresh.
        B = diffeqops.ArrayOperator(
            np.zeros((n, n)), update_func=lambda X, u, p, t: X + np.eye(n)
        )
        op = self.Operator(B, B)
        op.refresh(t=0.0)
        assert np.allclose(B.matrix, np.eye(n))
        assert np.allclose(op.apply(u), u)

    def test_factorize(self, n=5):
        """Square products are factorized factor by factor."""
        op = self.get_operator(n)
        factored = op.factorize()
        assert isinstance(factored, self.Operator)
        assert all(f.isfactorized for f in factored.factors)
        u = np.random.random(n)
        assert np.allclose(factored.solve(u), op.solve(u))


class TestComposedOperatorRectangular(_TestOperatorTemplate):
    """Test operators._composed.ComposedOperator with rectangular factors."""

    Operator = _module.ComposedOperator

    def get_operator(self, n):
        return self.Operator(
            diffeqops.ArrayOperator(_random_matrix(n, 3)),
            diffeqops.ArrayOperator(_random_matrix(3, n + 2)),
        )

    def test_rectangular(self, n=5):
        op = self.get_operator(n)
        assert op.shape == (n, n + 2)
        assert not op.issquare
        assert not op.has_solve

        # Square product of rectangular factors.
        op = self.Operator(
            diffeqops.ArrayOperator(_random_matrix(n, n + 1)),
            diffeqops.ArrayOperator(_random_matrix(n + 1, n)),
        )
        assert op.issquare
        assert not op.has_solve
        factored = op.factorize("svd")
        assert isinstance(factored, diffeqops.ArrayOperator)


class TestInvertedOperator(_TestOperatorTemplate):
    """Test operators._composed.InvertedOperator."""

    Operator = _module.InvertedOperator

    def get_operator(self, n):
        return self.Operator(diffeqops.ArrayOperator(_random_matrix(n)))

    def test_init(self, n=5):
        """Test __init__() and the checks on the inverted operator."""
        M = _random_matrix(n)
        A = diffeqops.ArrayOperator(M)
        op = self.Operator(A)
        assert op.operator is A
        assert op.shape == (n, n)
        assert op.has_apply_into
        assert op.has_solve
        assert op.has_solve_into

        with pytest.raises(TypeError) as ex:
            self.Operator(M)
        assert ex.value.args[0] == "operator must be an operator"

        R = diffeqops.ArrayOperator(_random_matrix(n, n + 1))
        with pytest.raises(diffeqops.errors.DimensionMismatchError) as ex:
            self.Operator(R)
        assert ex.value.args[0] == (
            f"only square operators can be inverted, got {(n, n + 1)}"
        )

        with pytest.raises(diffeqops.errors.SingularOperatorError) as ex:
            self.Operator(diffeqops.NullOperator(n))
        assert ex.value.args[0] == "zero operator cannot be inverted"

        with pytest.raises(
            diffeqops.errors.UnsupportedCapabilityError
        ) as ex:
            self.Operator(A + A)
        assert ex.value.args[0] == "AddedOperator does not support solve()"

    def test_apply_solve(self, n=6):
        """Applying solves with the inner operator and vice versa."""
        M = _random_matrix(n)
        op = self.Operator(diffeqops.ArrayOperator(M))
        u = np.random.random(n)
        assert np.allclose(op.apply(u), np.linalg.solve(M, u))
        assert np.allclose(op.solve(u), M @ u)
        out = np.empty(n)
        op.apply_into(out, u)
        assert np.allclose(out, np.linalg.solve(M, u))
        op.solve_into(out, u)
        assert np.allclose(out, M @ u)

    def test_factorize(self, n=5):
        op = self.get_operator(n)
        factored = op.factorize()
        assert isinstance(factored, self.Operator)
        assert factored.operator.isfactorized
