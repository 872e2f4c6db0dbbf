"""Nonlinear atoms.

Each atom here is either convex or concave in its arguments and has a conic
graph implementation in :mod:`openconic.symbolic.canonicalizer`. Elementwise
atoms keep the size of their operand; ``MaxEntries``/``MinEntries`` and
``QuadOverLin`` reduce to ``(1, 1)``.
"""

from typing import Tuple

from .expr import Atom, _broadcast_size, to_expr


class Abs(Atom):
    """|x|, elementwise."""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        """|x| preserves the shape of x."""
        return self.x.check_shape()

    def __repr__(self):
        return f"abs({self.x!r})"


class Square(Atom):
    """x^2"""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        """x^2 preserves the shape of x."""
        return self.x.check_shape()

    def __repr__(self):
        return f"({self.x!r})^2"


class Sqrt(Atom):
    """sqrt(x), elementwise; concave and defined for x >= 0."""

    def __init__(self, operand):
        self.operand = to_expr(operand)

    def children(self):
        return [self.operand]

    def check_shape(self) -> Tuple[int, int]:
        return self.operand.check_shape()

    def __repr__(self):
        return f"sqrt({self.operand!r})"


class InvPos(Atom):
    """1 / x restricted to x > 0, elementwise."""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        return self.x.check_shape()

    def __repr__(self):
        return f"inv_pos({self.x!r})"


# Penalty function building blocks
class PositivePart(Atom):
    """pos(x) = max(x, 0)"""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        """pos(x) = max(x, 0) preserves the shape of x."""
        return self.x.check_shape()

    def __repr__(self):
        return f"pos({self.x!r})"


class Max(Atom):
    """Elementwise maximum of two or more operands: max(a, b, c, ...)"""

    def __init__(self, *args):
        if len(args) < 2:
            raise ValueError("Max requires two or more operands")
        self.operands = [to_expr(a) for a in args]

    def children(self):
        return list(self.operands)

    def check_shape(self) -> Tuple[int, int]:
        """Max broadcasts (1, 1) operands against the others."""
        return _broadcast_size(self, [op.check_shape() for op in self.operands])

    def __repr__(self):
        inner = ", ".join(repr(op) for op in self.operands)
        return f"max({inner})"


class Min(Atom):
    """Elementwise minimum of two or more operands: min(a, b, c, ...)"""

    def __init__(self, *args):
        if len(args) < 2:
            raise ValueError("Min requires two or more operands")
        self.operands = [to_expr(a) for a in args]

    def children(self):
        return list(self.operands)

    def check_shape(self) -> Tuple[int, int]:
        return _broadcast_size(self, [op.check_shape() for op in self.operands])

    def __repr__(self):
        inner = ", ".join(repr(op) for op in self.operands)
        return f"min({inner})"


class MaxEntries(Atom):
    """Largest entry of an expression."""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        self.x.check_shape()
        return (1, 1)

    def __repr__(self):
        return f"max_entries({self.x!r})"


class MinEntries(Atom):
    """Smallest entry of an expression."""

    def __init__(self, x):
        self.x = to_expr(x)

    def children(self):
        return [self.x]

    def check_shape(self) -> Tuple[int, int]:
        self.x.check_shape()
        return (1, 1)

    def __repr__(self):
        return f"min_entries({self.x!r})"


class QuadOverLin(Atom):
    """sum(x_ij^2) / y for a scalar y > 0.

    Convex jointly in ``(x, y)``; the sum of squares of ``x`` is taken over
    all entries, so matrices are allowed.

    Example:
        >>> x = Variable(3)
        >>> t = Variable()
        >>> f = QuadOverLin(x, t)  # ||x||^2 / t
    """

    def __init__(self, x, y):
        self.x = to_expr(x)
        self.y = to_expr(y)

    def children(self):
        return [self.x, self.y]

    def check_shape(self) -> Tuple[int, int]:
        self.x.check_shape()
        if self.y.check_shape() != (1, 1):
            raise ValueError(f"QuadOverLin denominator must be a scalar, got {self.y.check_shape()}")
        return (1, 1)

    def __repr__(self):
        return f"quad_over_lin({self.x!r}, {self.y!r})"


def sum_squares(x) -> QuadOverLin:
    """Sum of the squares of all entries of ``x``."""
    return QuadOverLin(x, 1)
