# utils/_requires.py
"""Wrappers for operator methods that require a capability."""

__all__ = [
    "requires",
]

import functools

from .. import errors


def requires(capability: str) -> callable:
    """Wrapper for methods that are only available when the boolean
    property ``capability`` of the operator is ``True``.

    Parameters
    ----------
    capability : str
        Name of the capability property, e.g., ``"has_apply_into"``.

    Raises
    ------
    diffeqops.errors.UnsupportedCapabilityError
        When the wrapped method is called but the capability is missing.
    """

    def _wrapper(func):
        @functools.wraps(func)
        def _decorator(self, *args, **kwargs):
            if not getattr(self, capability):
                raise errors.UnsupportedCapabilityError(
                    f"{self.__class__.__name__}.{func.__name__}() "
                    f"requires {capability}"
                )
            return func(self, *args, **kwargs)

        return _decorator

    return _wrapper
