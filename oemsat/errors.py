"""
oemsat.errors
=============

Exceptions raised by the :code:`oemsat` package.

Input contract violations are raised eagerly, before any forward model
call, as :class:`InputError`. Numeric problems inside a solver are raised
as :class:`NumericFailure` and converted into a diagnostics code by the
inversion driver.
"""


class OEMError(Exception):
    """Base class for all errors raised by oemsat."""


class InputError(OEMError, ValueError):
    """
    Invalid input: malformed dimensions, invalid method names, unknown
    units or species.
    """


class GridError(InputError):
    """
    A grid is not strictly monotonic or a point lies outside the
    allowed extrapolation range.
    """


class NumericFailure(OEMError, ArithmeticError):
    """
    A linear system could not be solved or produced non-finite values.
    """
