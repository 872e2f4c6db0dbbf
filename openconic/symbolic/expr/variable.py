from typing import Optional

import scipy.sparse as sp

from openconic.errors import ValidationError
from openconic.symbolic.ids import IdAllocator, get_id

from .expr import Leaf, _as_matrix


class Variable(Leaf):
    """Decision variable for conic optimization problems.

    A Variable is a leaf with a session-unique id and a declared size. Its
    curvature is AFFINE and its sign UNKNOWN. The id fixes the position of
    the variable's columns in the assembled constraint matrix: variables are
    laid out in increasing id order.

    After a solve the problem writes the optimal values back into
    :attr:`value`.

    Attributes:
        id (int): Unique, never-reused identifier
        name (str): Display name, ``var<id>`` by default

    Example:
        >>> x = Variable(3)          # column vector, size (3, 1)
        >>> X = Variable(2, 4, name="X")
        >>> (X @ x[0:4]).size         # raises ValueError: x only has 3 rows
    """

    def __init__(
        self,
        rows: int = 1,
        cols: int = 1,
        name: Optional[str] = None,
        allocator: Optional[IdAllocator] = None,
    ):
        super().__init__((rows, cols))
        self.id = get_id(allocator)
        self.name = name if name is not None else f"var{self.id}"
        self._value = None

    @property
    def rows(self) -> int:
        return self._size[0]

    @property
    def cols(self) -> int:
        return self._size[1]

    @property
    def value(self):
        return self._value

    @value.setter
    def value(self, val):
        if val is None:
            self._value = None
            return
        val = _as_matrix(val, f"Variable {self.name!r} value")
        if sp.issparse(val):
            val = val.toarray()
        if val.shape != self._size:
            raise ValidationError(
                f"Invalid dimensions {val.shape} for Variable {self.name!r} of size {self._size}"
            )
        self._value = val

    def get_data(self):
        return {"rows": self.rows, "cols": self.cols, "name": self.name}

    def __repr__(self):
        return f"Var({self.name!r})"
