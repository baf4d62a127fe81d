# operators/_scaled.py
"""Operators multiplied by a (possibly time-dependent) scalar coefficient."""

__all__ = [
    "ScaledOperator",
]

import numpy as np

from .. import errors, utils
from ._base import (
    Capabilities,
    OperatorTemplate,
    is_operator,
    _load_group,
    _refresh_once,
)
from ._scalar import ScalarCoefficient, is_scalar


class ScaledOperator(OperatorTemplate):
    r"""Scaled operator :math:`(\lambda\L)\x = \lambda(\L\x)`.

    The coefficient is copied, so each scaled operator owns its coefficient
    and refreshing one operator never changes another. Scaling a scaled
    operator multiplies the coefficients and wraps the original inner
    operator, so a scaled operator never contains another one directly.

    Parameters
    ----------
    coefficient : number or ScalarCoefficient
        Scaling factor :math:`\lambda`.
    operator : OperatorTemplate
        Inner operator :math:`\L`.

    Examples
    --------
    >>> A = ArrayOperator(np.eye(3))
    >>> B = ScaledOperator(2, ScaledOperator(3, A))
    >>> B.coefficient.value, B.operator is A
    (6, True)
    """

    def __init__(self, coefficient, operator):
        """Wrap the coefficient and flatten nested scalings."""
        if not is_scalar(coefficient):
            raise TypeError(
                "coefficient must be a number or ScalarCoefficient"
            )
        if not is_operator(operator):
            raise TypeError("operator must be an operator")
        coefficient = ScalarCoefficient.wrap(coefficient)
        if isinstance(operator, ScaledOperator):
            coefficient = coefficient * operator.coefficient
            operator = operator.operator
        self.__coefficient = coefficient
        self.__operator = operator
        OperatorTemplate.__init__(self)

    def _build_capabilities(self):
        L = self.__operator
        return Capabilities(
            isconstant=self.__coefficient.isconstant and L.isconstant,
            issquare=L.issquare,
            has_adjoint=L.has_adjoint,
            has_apply_into=L.has_apply_into,
            has_solve=L.has_solve,
            has_solve_into=L.has_solve_into,
        )

    # Properties --------------------------------------------------------------
    @property
    def coefficient(self) -> ScalarCoefficient:
        """Scaling factor, owned by this operator."""
        return self.__coefficient

    @property
    def operator(self) -> OperatorTemplate:
        """Inner operator (never a :class:`ScaledOperator`)."""
        return self.__operator

    @property
    def shape(self) -> tuple:
        return self.__operator.shape

    @property
    def dtype(self):
        return np.result_type(self.__coefficient.dtype, self.__operator.dtype)

    @property
    def iszero(self) -> bool:
        """``True`` if the coefficient or the inner operator is zero."""
        return self.__coefficient.iszero or self.__operator.iszero

    @property
    def has_solve(self) -> bool:
        """``True`` if the inner operator can be inverted and the coefficient
        is currently nonzero.
        """
        return self.capabilities.has_solve and not self.__coefficient.iszero

    @property
    def has_solve_into(self) -> bool:
        caps = self.capabilities
        return caps.has_solve_into and not self.__coefficient.iszero

    def __str__(self) -> str:
        out = [OperatorTemplate.__str__(self)]
        out.append(f"coefficient: {self.__coefficient}")
        out.append(f"operator: {self.__operator.__class__.__name__}")
        return "\n  ".join(out)

    # Evaluation --------------------------------------------------------------
    def _apply(self, x):
        return self.__coefficient.apply(self.__operator.apply(x))

    def _apply_into(self, out, x):
        self.__operator.apply_into(out, x)
        self.__coefficient.lmul(out)

    def _solve(self, x):
        return self.__coefficient.solve(self.__operator.solve(x))

    def _solve_into(self, out, x):
        self.__operator.solve_into(out, x)
        out /= self.__coefficient.value

    @utils.requires("has_adjoint")
    def adjoint(self):
        """Conjugated coefficient times the adjoint of the inner operator."""
        return ScaledOperator(
            self.__coefficient.conj(), self.__operator.adjoint()
        )

    def _refresh(self, state, parameters, t, visited):
        """Refresh the coefficient, then the inner operator."""
        self.__coefficient.refresh(state, parameters, t)
        _refresh_once([self.__operator], state, parameters, t, visited)

    # Conversion --------------------------------------------------------------
    def __getitem__(self, key):
        return self.__coefficient.value * self.__operator[key]

    def to_matrix(self) -> np.ndarray:
        return self.__coefficient.value * self.__operator.to_matrix()

    def to_sparse(self):
        return self.__coefficient.value * self.__operator.to_sparse()

    def opnorm(self, p=2):
        return abs(self.__coefficient) * self.__operator.opnorm(p)

    def factorize(self, method: str = None):
        """Scale a factorization of the inner operator."""
        if self.iszero:
            raise errors.SingularOperatorError(
                "zero operator cannot be factorized"
            )
        return ScaledOperator(
            self.__coefficient, self.__operator.factorize(method)
        )

    # Model persistence -------------------------------------------------------
    def _save_data(self, group):
        group.create_dataset("coefficient", data=self.__coefficient.value)
        self.__operator._save(group.create_group("operator"))

    @classmethod
    def _load_data(cls, group):
        return cls(
            group["coefficient"][()],
            _load_group(group["operator"]),
        )
