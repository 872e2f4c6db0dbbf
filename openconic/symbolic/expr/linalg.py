"""Linear algebra operations for symbolic expressions.

This module provides the structural matrix operations and norms used in conic
problems. Every expression is two-dimensional, so stacking and reshaping work
on ``(rows, cols)`` sizes and vectorize column-major.

Key Operations:

- **Matrix Operations:**
    - `Transpose` - Swap rows and columns
    - `Reshape` - Reinterpret the entries (column-major) under a new size
- **Stacking and Concatenation:**
    - `Hstack` - Horizontally stack matrices/vectors
    - `Vstack` - Vertically stack matrices/vectors
- **Norms:**
    - `Norm` - 1, 2 (entrywise, i.e. Frobenius for matrices) and infinity norms

Example:
    Least squares with a norm bound::

        import numpy as np
        import openconic as oc

        A = np.random.randn(5, 3)
        b = np.random.randn(5)
        x = oc.Variable(3)
        problem = oc.Problem(oc.Minimize(oc.Norm(A @ x - b, 2)), [oc.Norm(x, "inf") <= 1])
"""

from typing import Tuple

import numpy as np

from .expr import Atom, Expr, to_expr


class Transpose(Expr):
    """Matrix transpose operation for symbolic expressions.

    Attributes:
        operand: Expression to transpose

    Example:
        >>> A = Variable(3, 4)
        >>> A.T.size
        (4, 3)
    """

    def __init__(self, operand):
        self.operand = to_expr(operand)

    def children(self):
        return [self.operand]

    def check_shape(self) -> Tuple[int, int]:
        rows, cols = self.operand.check_shape()
        return (cols, rows)

    def __repr__(self):
        return f"({self.operand!r}).T"


class Reshape(Expr):
    """Column-major reshape of an expression to a new size with the same number of entries."""

    def __init__(self, operand, rows: int, cols: int = 1):
        self.operand = to_expr(operand)
        self.new_size = (int(rows), int(cols))

    def children(self):
        return [self.operand]

    def check_shape(self) -> Tuple[int, int]:
        rows, cols = self.operand.check_shape()
        if rows * cols != self.new_size[0] * self.new_size[1]:
            raise ValueError(f"Cannot reshape {(rows, cols)} into {self.new_size}")
        return self.new_size

    def __repr__(self):
        return f"reshape({self.operand!r}, {self.new_size})"


class Hstack(Expr):
    """Horizontal stacking operation for symbolic expressions.

    Concatenates expressions along columns; row counts must match. This is
    analogous to ``numpy.hstack`` on 2-D arrays.

    Attributes:
        arrays: List of expressions to stack horizontally

    Example:
        >>> A = Variable(3, 4)
        >>> B = Variable(3, 2)
        >>> Hstack([A, B]).size
        (3, 6)
    """

    def __init__(self, arrays):
        self.arrays = [to_expr(arr) for arr in arrays]

    def children(self):
        return list(self.arrays)

    def check_shape(self) -> Tuple[int, int]:
        if not self.arrays:
            raise ValueError("Hstack requires at least one array")
        array_shapes = [arr.check_shape() for arr in self.arrays]
        first_rows = array_shapes[0][0]
        for i, shape in enumerate(array_shapes[1:], 1):
            if shape[0] != first_rows:
                raise ValueError(
                    f"Hstack array {i} has {shape[0]} rows, but array 0 has {first_rows} rows"
                )
        return (first_rows, sum(shape[1] for shape in array_shapes))

    def __repr__(self):
        arrays_repr = ", ".join(repr(arr) for arr in self.arrays)
        return f"Hstack([{arrays_repr}])"


class Vstack(Expr):
    """Vertical stacking operation for symbolic expressions.

    Concatenates expressions along rows; column counts must match. Stacking
    column vectors gives a longer column vector.

    Attributes:
        arrays: List of expressions to stack vertically

    Example:
        >>> x = Variable(3)
        >>> y = Variable(2)
        >>> Vstack([x, y]).size
        (5, 1)
    """

    def __init__(self, arrays):
        self.arrays = [to_expr(arr) for arr in arrays]

    def children(self):
        return list(self.arrays)

    def check_shape(self) -> Tuple[int, int]:
        if not self.arrays:
            raise ValueError("Vstack requires at least one array")
        array_shapes = [arr.check_shape() for arr in self.arrays]
        first_cols = array_shapes[0][1]
        for i, shape in enumerate(array_shapes[1:], 1):
            if shape[1] != first_cols:
                raise ValueError(
                    f"Vstack array {i} has {shape[1]} columns, but array 0 has {first_cols} columns"
                )
        return (sum(shape[0] for shape in array_shapes), first_cols)

    def __repr__(self):
        arrays_repr = ", ".join(repr(arr) for arr in self.arrays)
        return f"Vstack([{arrays_repr}])"


def _parse_ord(ord):
    if isinstance(ord, str):
        key = ord.strip().lower()
        if key == "fro":
            return 2
        if key == "inf":
            return np.inf
    elif ord in (1, 2) or ord == np.inf:
        return np.inf if ord == np.inf else int(ord)
    raise ValueError(f"Unsupported norm order {ord!r}; expected 1, 2, 'fro' or 'inf'")


class Norm(Atom):
    """Norm operation for symbolic expressions (reduction to scalar).

    Matrices are treated as vectors of their entries, so ``ord=2`` of a
    matrix is its Frobenius norm. The result is always ``(1, 1)``, convex
    and non-negative.

    Attributes:
        operand: Expression to compute norm of
        ord: Norm order, one of 1, 2 or ``np.inf``
            - 1: sum of absolute values
            - 2 (or "fro"): Euclidean norm of the entries
            - ``np.inf`` (or "inf"): largest absolute value

    Example:
        >>> x = Variable(3)
        >>> euclidean_norm = Norm(x, 2)
        >>> A = Variable(3, 4)
        >>> frobenius_norm = Norm(A)
    """

    def __init__(self, operand, ord=2):
        """Initialize a norm operation.

        Raises:
            ValueError: If ``ord`` is not a supported norm order
        """
        self.operand = to_expr(operand)
        self.ord = _parse_ord(ord)

    def children(self):
        return [self.operand]

    def check_shape(self) -> Tuple[int, int]:
        """Norm reduces any size to a scalar."""
        self.operand.check_shape()
        return (1, 1)

    def __repr__(self):
        return f"norm({self.operand!r}, ord={self.ord!r})"


def norm1(x) -> Norm:
    return Norm(x, 1)


def norm2(x) -> Norm:
    return Norm(x, 2)


def norm_inf(x) -> Norm:
    return Norm(x, np.inf)
