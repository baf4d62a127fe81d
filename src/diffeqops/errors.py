# errors.py
"""Custom exception and warning classes."""


class DimensionMismatchError(ValueError):  # pragma: no cover
    """Vector length or operator shape not aligned with an operator."""

    pass


class SingularOperatorError(ZeroDivisionError):  # pragma: no cover
    """Solve requested for an operator or coefficient that is exactly zero
    or otherwise singular.
    """

    pass


class UnsupportedCapabilityError(NotImplementedError):  # pragma: no cover
    """Operation requested on an operator that does not provide it."""

    pass


class LoadfileFormatError(Exception):  # pragma: no cover
    """File format inconsistent with a loading routine."""

    pass


class VerificationError(RuntimeError):  # pragma: no cover
    """Operator implementation is internally inconsistent."""

    pass


class DiffEqOpsWarning(UserWarning):  # pragma: no cover
    """Generic warning for package usage."""

    pass
