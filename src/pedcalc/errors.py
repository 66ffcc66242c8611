"""
Error taxonomy for the pedcalc engine.

NoReferenceDataError and DomainRangeError describe ordinary clinical situations
(an age or gestational age the bundled standards do not cover). The engine turns
them into a null-valued result carrying a warning. DataIntegrityError means a
reference table row is malformed and always propagates to the caller.
"""


class PedCalcError(Exception):
    """Base class for all pedcalc errors."""


class NoReferenceDataError(PedCalcError):
    """No reference row matches the requested standard, sex and age."""


class DomainRangeError(PedCalcError):
    """Age or gestational age lies outside the domain of the selected standard."""


class DataIntegrityError(PedCalcError, ValueError):
    """A reference row or measurement cannot be transformed (M <= 0, S <= 0, ...)."""
