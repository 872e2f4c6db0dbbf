"""Error types raised while building, canonicalizing and assembling problems.

Every error derives from :class:`OpenConicError` so callers can catch the whole
family, and also from the closest builtin so existing ``except ValueError``
handlers keep working.
"""


class OpenConicError(Exception):
    """Base class for all openconic errors."""


class ValidationError(OpenConicError, ValueError):
    """A leaf was given a non-numeric value or a value of the wrong shape or sign."""


class SignDeclarationError(ValidationError):
    """A sign string outside ZERO, POSITIVE, NEGATIVE, UNKNOWN was declared."""


class DCPViolationError(OpenConicError, ValueError):
    """An operator was applied to arguments that break the DCP composition rules.

    Attributes:
        node: The expression node at which the violation was detected
    """

    def __init__(self, message, node=None):
        super().__init__(message)
        self.node = node


class SizeMismatchError(OpenConicError, ValueError):
    """A canonical affine form disagrees with the size of its source node."""


class AssemblyError(OpenConicError, RuntimeError):
    """Numeric assembly failed (missing parameter value, bad cone accounting)."""


class SolverError(OpenConicError, RuntimeError):
    """The external conic solver failed or returned a non-optimal status."""
