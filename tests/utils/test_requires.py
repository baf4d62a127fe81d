# utils/test_requires.py
"""Tests for utils._requires."""

import pytest

import diffeqops


def test_requires():
    """Test utils._requires.requires()."""

    class Dummy:
        def __init__(self, has_thing=False):
            self.has_thing = has_thing

        @diffeqops.utils.requires("has_thing")
        def do_something(self, x):
            """Docstring."""
            return 2 * x

    d = Dummy()
    with pytest.raises(diffeqops.errors.UnsupportedCapabilityError) as ex:
        d.do_something(1)
    assert ex.value.args[0] == "Dummy.do_something() requires has_thing"
    assert isinstance(ex.value, NotImplementedError)

    d.has_thing = True
    assert d.do_something(3) == 6
    assert Dummy.do_something.__name__ == "do_something"
    assert Dummy.do_something.__doc__ == "Docstring."
