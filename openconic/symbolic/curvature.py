"""Curvature lattice and the DCP composition rule.

The lattice is ordered CONSTANT < AFFINE < {CONVEX, CONCAVE} < UNKNOWN. An
affine expression is both convex and concave; a constant one is also affine.
"""

from enum import Enum

from .sign import Sign


class Curvature(str, Enum):
    """String enum for expression curvature."""

    CONSTANT = "CONSTANT"
    AFFINE = "AFFINE"
    CONVEX = "CONVEX"
    CONCAVE = "CONCAVE"
    UNKNOWN = "UNKNOWN"

    def is_constant(self) -> bool:
        return self is Curvature.CONSTANT

    def is_affine(self) -> bool:
        return self is Curvature.CONSTANT or self is Curvature.AFFINE

    def is_convex(self) -> bool:
        return self.is_affine() or self is Curvature.CONVEX

    def is_concave(self) -> bool:
        return self.is_affine() or self is Curvature.CONCAVE

    def is_unknown(self) -> bool:
        return self is Curvature.UNKNOWN

    def is_dcp(self) -> bool:
        """Known curvature means the expression follows the DCP rules."""
        return not self.is_unknown()

    def __add__(self, other: "Curvature") -> "Curvature":
        """Curvature of a sum.

        CONSTANT + c = c, AFFINE + non-constant = non-constant, CONVEX + CONCAVE
        = UNKNOWN, and equal curvatures are preserved.
        """
        if not isinstance(other, Curvature):
            return NotImplemented
        if self.is_constant():
            return other
        if other.is_constant():
            return self
        if self.is_affine() and other.is_affine():
            return Curvature.AFFINE
        if self.is_convex() and other.is_convex():
            return Curvature.CONVEX
        if self.is_concave() and other.is_concave():
            return Curvature.CONCAVE
        return Curvature.UNKNOWN

    def __sub__(self, other: "Curvature") -> "Curvature":
        if not isinstance(other, Curvature):
            return NotImplemented
        return self + (-other)

    def __neg__(self) -> "Curvature":
        if self is Curvature.CONVEX:
            return Curvature.CONCAVE
        if self is Curvature.CONCAVE:
            return Curvature.CONVEX
        return self

    @staticmethod
    def sign_mul(sign: Sign, curvature: "Curvature") -> "Curvature":
        """Curvature of a constant with the given sign times an expression.

        ZERO * c = CONSTANT, POSITIVE * c = c, NEGATIVE * c = -c, and an
        UNKNOWN sign only keeps affine curvature.
        """
        if sign.is_zero():
            return Curvature.CONSTANT
        if sign is Sign.POSITIVE:
            return curvature
        if sign is Sign.NEGATIVE:
            return -curvature
        if curvature.is_affine():
            return curvature
        return Curvature.UNKNOWN

    def __str__(self):
        return self.value


class Monotonicity(str, Enum):
    """Monotonicity of a function in one of its arguments.

    INCREASING and DECREASING are meant in the weak sense. SIGNED marks
    functions like ``abs`` that increase for non-negative arguments and
    decrease for non-positive ones.
    """

    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    SIGNED = "SIGNED"
    NONMONOTONIC = "NONMONOTONIC"


def dcp_curvature(
    monotonicity: Monotonicity,
    func_curvature: Curvature,
    arg_sign: Sign,
    arg_curvature: Curvature,
) -> Curvature:
    """Curvature of a function applied to one argument under the DCP rules.

    Composition rules (function curvature + monotonicity + argument curvature):

    - anything + anything + constant = constant
    - anything + anything + affine = function curvature
    - convex + increasing + convex = convex
    - convex + decreasing + concave = convex
    - concave + increasing + concave = concave
    - concave + decreasing + convex = concave
    - convex + signed + (convex and non-negative, or concave and non-positive) = convex

    Every other combination is UNKNOWN.

    Args:
        monotonicity: Monotonicity of the function in this argument
        func_curvature: Curvature of the function itself
        arg_sign: Sign of the argument
        arg_curvature: Curvature of the argument

    Returns:
        Curvature: Curvature contributed by this argument
    """
    if arg_curvature.is_constant():
        return Curvature.CONSTANT
    if arg_curvature.is_affine():
        return func_curvature
    if monotonicity is Monotonicity.INCREASING:
        return func_curvature + arg_curvature
    if monotonicity is Monotonicity.DECREASING:
        return func_curvature - arg_curvature
    if monotonicity is Monotonicity.SIGNED and func_curvature.is_convex():
        if (arg_curvature.is_convex() and arg_sign.is_positive()) or (
            arg_curvature.is_concave() and arg_sign.is_negative()
        ):
            return func_curvature
        return Curvature.UNKNOWN
    # Non-monotonic functions only compose with affine arguments.
    return Curvature.UNKNOWN
