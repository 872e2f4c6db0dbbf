"""Four-valued sign lattice for symbolic expressions.

POSITIVE and NEGATIVE are read as *non-negative* and *non-positive*. ZERO sits
below both, so a ZERO expression reports ``is_positive()`` and
``is_negative()``; UNKNOWN reports neither.

Combination rules:

- ``ZERO + s = s``, ``POSITIVE + POSITIVE = POSITIVE``,
  ``NEGATIVE + NEGATIVE = NEGATIVE``, any other sum is UNKNOWN
- ``ZERO * s = ZERO``, ``UNKNOWN * (non-zero) = UNKNOWN``, equal signs give
  POSITIVE and opposite signs give NEGATIVE
- ``-s`` swaps POSITIVE and NEGATIVE
"""

from enum import Enum
from typing import Iterable

import numpy as np
import scipy.sparse as sp

from openconic.errors import SignDeclarationError


class Sign(str, Enum):
    """String enum for expression signs.

    Users may pass plain strings (any case) where a sign is expected; use
    :meth:`Sign.parse` to convert them.
    """

    ZERO = "ZERO"
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, sign) -> "Sign":
        """Convert a sign name or Sign into a Sign.

        Raises:
            SignDeclarationError: If ``sign`` does not name a lattice member
        """
        if isinstance(sign, Sign):
            return sign
        if isinstance(sign, str):
            key = sign.strip().upper()
            if key in cls.__members__:
                return cls[key]
        valid = ", ".join(cls.__members__)
        raise SignDeclarationError(f"{sign!r} is not a valid sign; expected one of {valid}")

    @classmethod
    def from_flags(cls, nonneg: bool, nonpos: bool) -> "Sign":
        """Build a Sign from the two facts it encodes."""
        if nonneg and nonpos:
            return cls.ZERO
        if nonneg:
            return cls.POSITIVE
        if nonpos:
            return cls.NEGATIVE
        return cls.UNKNOWN

    @classmethod
    def from_value(cls, value, tol: float = 0.0) -> "Sign":
        """Sign of a numeric scalar, array or sparse matrix, taken over all entries.

        Args:
            value: Numeric data
            tol: Entries within ``tol`` of zero count as zero
        """
        if sp.issparse(value):
            # Implicit zeros are both non-negative and non-positive.
            data = value.tocoo().data
        else:
            data = np.asarray(value, dtype=float).ravel()
        if data.size == 0:
            return cls.ZERO
        return cls.from_flags(bool(np.all(data >= -tol)), bool(np.all(data <= tol)))

    @classmethod
    def join(cls, signs: Iterable["Sign"]) -> "Sign":
        """Sign of a block made by stacking blocks with the given signs."""
        signs = list(signs)
        return cls.from_flags(
            all(s.is_positive() for s in signs),
            all(s.is_negative() for s in signs),
        )

    def is_zero(self) -> bool:
        return self is Sign.ZERO

    def is_positive(self) -> bool:
        """Is the expression known to be non-negative?"""
        return self is Sign.ZERO or self is Sign.POSITIVE

    def is_negative(self) -> bool:
        """Is the expression known to be non-positive?"""
        return self is Sign.ZERO or self is Sign.NEGATIVE

    def is_unknown(self) -> bool:
        return self is Sign.UNKNOWN

    def __add__(self, other: "Sign") -> "Sign":
        if not isinstance(other, Sign):
            return NotImplemented
        if self.is_zero():
            return other
        if other.is_zero():
            return self
        if self is other and not self.is_unknown():
            return self
        return Sign.UNKNOWN

    def __sub__(self, other: "Sign") -> "Sign":
        if not isinstance(other, Sign):
            return NotImplemented
        return self + (-other)

    def __mul__(self, other: "Sign") -> "Sign":
        if not isinstance(other, Sign):
            return NotImplemented
        if self.is_zero() or other.is_zero():
            return Sign.ZERO
        if self.is_unknown() or other.is_unknown():
            return Sign.UNKNOWN
        if self is other:
            return Sign.POSITIVE
        return Sign.NEGATIVE

    def __neg__(self) -> "Sign":
        if self is Sign.POSITIVE:
            return Sign.NEGATIVE
        if self is Sign.NEGATIVE:
            return Sign.POSITIVE
        return self

    def __str__(self):
        return self.value
