from typing import Tuple

from .expr import Expr, to_expr


class SOC(Expr):
    """
    Second-order cone membership ``||X[:, i]||_2 <= t[i]`` for every i.

    With ``axis=0`` (the default) the columns of ``X`` are the cone bodies
    and ``X`` is ``(m, n)`` for a head ``t`` of size ``(n, 1)``. With
    ``axis=1`` the rows of ``X`` are the bodies and ``X`` is ``(n, m)``.
    Each of the ``n`` cones has size ``m + 1``. Both ``t`` and ``X`` must be
    affine.

    A ``(1, 1)`` head with a column ``X`` is the plain constraint
    ``||x||_2 <= t``.

    Example:
        >>> x = Variable(2)
        >>> t = Variable()
        >>> cone = SOC(t, x)  # one cone of size 3
    """

    def __init__(self, t, X, axis: int = 0):
        if axis not in (0, 1):
            raise ValueError(f"SOC axis must be 0 or 1, got {axis}")
        self.t = to_expr(t)
        self.X = to_expr(X)
        self.axis = axis

    def children(self):
        return [self.t, self.X]

    def check_shape(self) -> Tuple[int, int]:
        """Validate the head against the body; returns the size of ``X``."""
        t_size = self.t.check_shape()
        x_size = self.X.check_shape()
        if t_size[1] != 1:
            raise ValueError(f"SOC head must be a column, got {t_size}")
        n = x_size[1] if self.axis == 0 else x_size[0]
        if t_size[0] != n:
            raise ValueError(f"SOC head {t_size} does not match body {x_size} on axis {self.axis}")
        return x_size

    @property
    def num_cones(self) -> int:
        return self.t.check_shape()[0]

    @property
    def cone_size(self) -> int:
        rows, cols = self.X.check_shape()
        return (rows if self.axis == 0 else cols) + 1

    def __repr__(self):
        return f"SOC({self.t!r}, {self.X!r}, axis={self.axis})"
