# operators/test_scalar.py
"""Tests for operators._scalar."""

import pytest
import numpy as np

import diffeqops


_module = diffeqops.operators._scalar


def _identity_in_time(oldval, state, parameters, t):
    return t


def test_is_scalar():
    """Test operators._scalar.is_scalar()."""
    for obj in (1, 2.5, 1j, True, np.float32(3), np.array(4.0)):
        assert _module.is_scalar(obj)
    assert _module.is_scalar(_module.ScalarCoefficient(2))
    for obj in ("a", [1], np.ones(3), None, diffeqops.IdentityOperator(2)):
        assert not _module.is_scalar(obj)


class TestScalarCoefficient:
    """Test operators._scalar.ScalarCoefficient."""

    Coefficient = _module.ScalarCoefficient

    def test_init(self):
        """Test __init__(), wrap(), and the properties."""
        alpha = self.Coefficient(2.5)
        assert alpha.value == 2.5
        assert alpha.update_func is None
        assert alpha.isconstant
        assert alpha.shape == ()
        assert alpha.dtype == np.float64
        assert not alpha.iszero
        assert alpha.issquare
        assert alpha.has_adjoint
        assert alpha.has_solve
        assert alpha.has_solve_into
        assert str(alpha) == "ScalarCoefficient(2.5, constant)"

        alpha = self.Coefficient(np.array(3.0))
        assert not isinstance(alpha.value, np.ndarray)
        assert alpha.value == 3

        beta = self.Coefficient(0, _identity_in_time)
        assert not beta.isconstant
        assert beta.iszero
        assert not beta.has_solve
        assert beta.update_func is _identity_in_time
        assert str(beta) == "ScalarCoefficient(0, time-dependent)"

        with pytest.raises(TypeError) as ex:
            self.Coefficient(beta)
        assert ex.value.args[0] == (
            "use ScalarCoefficient.wrap() to copy a ScalarCoefficient"
        )

        with pytest.raises(TypeError) as ex:
            self.Coefficient([1, 2])
        assert ex.value.args[0] == (
            "coefficient value must be a number, not '<class 'list'>'"
        )

        with pytest.raises(TypeError) as ex:
            self.Coefficient(1, update_func=10)
        assert ex.value.args[0] == "update_func must be callable or None"

        gamma = self.Coefficient.wrap(beta)
        assert gamma is not beta
        assert gamma.update_func is _identity_in_time
        gamma.refresh(t=4)
        assert gamma.value == 4
        assert beta.value == 0

        gamma = self.Coefficient.wrap(6)
        assert isinstance(gamma, self.Coefficient)
        assert gamma.value == 6

    def test_refresh(self, n=5):
        """Refreshing with update_func = t at t = 5 gives 5 * u."""
        alpha = self.Coefficient(1.0, update_func=_identity_in_time)
        assert alpha.refresh(None, None, 5) is alpha
        u = np.random.random(n)
        assert np.allclose(alpha.apply(u), 5 * u)

        # Constant coefficients do not change.
        beta = self.Coefficient(2.0)
        beta.refresh(u, None, 10)
        assert beta.value == 2

    def test_apply_solve(self, n=6):
        """Test apply(), solve(), the in-place variants, lmul(), and axpy()."""
        alpha = self.Coefficient(4.0)
        x = np.random.random(n)
        assert np.allclose(alpha.apply(x), 4 * x)
        assert np.allclose(alpha.solve(x), x / 4)
        assert alpha.apply(3) == 12

        out = np.empty(n)
        assert alpha.apply_into(out, x) is out
        assert np.allclose(out, 4 * x)
        assert alpha.solve_into(out, x) is out
        assert np.allclose(out, x / 4)

        with pytest.raises(diffeqops.errors.DimensionMismatchError) as ex:
            alpha.apply_into(np.empty(n + 1), x)
        assert ex.value.args[0] == (
            f"out.shape = {(n + 1,)} != x.shape = {(n,)}"
        )

        B = x.copy()
        assert alpha.lmul(B) is B
        assert np.allclose(B, 4 * x)

        Y = np.ones(n)
        assert alpha.axpy(x, Y) is Y
        assert np.allclose(Y, 1 + 4 * x)
        with pytest.raises(diffeqops.errors.DimensionMismatchError):
            alpha.axpy(x, np.ones(n + 1))

    def test_zero(self, n=4):
        """Solving with a zero coefficient raises SingularOperatorError."""
        alpha = self.Coefficient(0.0)
        x = np.random.random(n)
        with pytest.raises(diffeqops.errors.SingularOperatorError) as ex:
            alpha.solve(x)
        assert ex.value.args[0] == "division by a zero coefficient"
        with pytest.raises(ZeroDivisionError):
            alpha.solve_into(np.empty(n), x)
        with pytest.raises(diffeqops.errors.SingularOperatorError):
            alpha.inv()
        with pytest.raises(diffeqops.errors.SingularOperatorError):
            self.Coefficient(1.0) / alpha

    def test_inv_conj(self):
        """Test inv(), conj(), and adjoint()."""
        alpha = self.Coefficient(2 + 1j)
        assert np.isclose(alpha.inv().value, 1 / (2 + 1j))
        assert alpha.conj().value == 2 - 1j
        assert alpha.adjoint().value == 2 - 1j

        beta = self.Coefficient(2.0, update_func=_identity_in_time)
        beta_inv = beta.inv()
        assert not beta_inv.isconstant
        beta_inv.refresh(t=4.0)
        assert beta_inv.value == 0.25

    def test_arithmetic(self):
        """Test arithmetic between coefficients and numbers."""
        a = self.Coefficient(3.0)
        b = self.Coefficient(2.0)

        for c, value in [
            (a + b, 5),
            (a - b, 1),
            (a * b, 6),
            (a / b, 1.5),
            (a + 1, 4),
            (1 + a, 4),
            (a - 1, 2),
            (1 - a, -2),
            (a * 2, 6),
            (2 * a, 6),
            (a / 2, 1.5),
            (6 / a, 2),
            (-a, -3),
        ]:
            assert isinstance(c, self.Coefficient)
            assert c.isconstant
            assert c.value == value

        assert +a is a
        assert abs(self.Coefficient(-4.0)) == 4
        assert a == 3
        assert a == self.Coefficient(3)
        assert a != b
        assert float(a) == 3.0
        assert complex(a) == 3 + 0j
        assert bool(a)
        assert not bool(self.Coefficient(0))
        with pytest.raises(TypeError):
            hash(a)
        with pytest.raises(TypeError):
            a + "moose"

    def test_arithmetic_time_dependent(self):
        """Arithmetic keeps the update rules of its operands."""
        a = self.Coefficient(0.0, update_func=_identity_in_time)
        b = self.Coefficient(1.0)

        c = 2 * a + b
        assert not c.isconstant
        assert c.value == 1
        c.refresh(t=3.0)
        assert c.value == 7
        assert a.value == 0  # operands are copied

        d = a * a
        d.refresh(t=4.0)
        assert d.value == 16

        e = b - a
        e.refresh(t=1.5)
        assert e.value == -0.5

        # The combined rule is available without refreshing the result.
        func = c.update_func
        assert callable(func)
        assert func(c.value, None, None, 5.0) == 11
        assert c.value == 7
        assert (2 * b).update_func is None

    def test_arrays(self, n=5):
        """Coefficients times arrays apply the coefficient."""
        a = self.Coefficient(3.0)
        x = np.random.random(n)
        for y in (a * x, x * a):
            assert isinstance(y, np.ndarray)
            assert np.allclose(y, 3 * x)
        assert np.allclose(x / a, x / 3)
        assert np.allclose(a / (x + 1), 3 / (x + 1))

    def test_copy(self):
        """Test copy()."""
        a = self.Coefficient(0.0, update_func=_identity_in_time)
        b = a.copy()
        assert b is not a
        b.refresh(t=1.0)
        assert b.value == 1
        assert a.value == 0
