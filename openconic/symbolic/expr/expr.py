from typing import Callable, List, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

from openconic.errors import ValidationError
from openconic.symbolic.ids import IdAllocator, get_id
from openconic.symbolic.sign import Sign

Size = Tuple[int, int]


class Expr:
    """Base class for symbolic expressions in conic optimization problems.

    Expr is the foundation of the symbolic expression system in openconic. It
    represents nodes in a tree of mathematical expressions. Every node knows:

    - its size ``(rows, cols)`` (vectors are columns)
    - its sign (see :class:`~openconic.symbolic.sign.Sign`)
    - its curvature (see :class:`~openconic.symbolic.curvature.Curvature`)
    - its canonical form, a pair ``(AffineExpr, [constraints])``
    - its numeric value, when every leaf below it has one

    Expressions support:

    - Arithmetic operations: +, -, *, /, @, **
    - Comparison operations: ==, <=, >= (building constraints)
    - Indexing and slicing: []
    - Transposition: .T property

    Sign and curvature come from the per-operator rule table in
    :mod:`openconic.symbolic.dcp`; canonical forms come from the rule table in
    :mod:`openconic.symbolic.canonicalizer`.

    Attributes:
        __array_priority__: Priority for operations with numpy arrays (set to 1000)

    Note:
        ``==`` builds an :class:`Equality` constraint, so expressions are not
        hashable and must be compared with ``is``.
    """

    # Give Expr objects higher priority than numpy arrays in operations
    __array_priority__ = 1000

    def __le__(self, other):
        return Inequality(self, to_expr(other))

    def __ge__(self, other):
        return Inequality(to_expr(other), self)

    def __eq__(self, other):
        return Equality(self, to_expr(other))

    __hash__ = None

    def __add__(self, other):
        return Add(self, to_expr(other))

    def __radd__(self, other):
        return Add(to_expr(other), self)

    def __sub__(self, other):
        return Sub(self, to_expr(other))

    def __rsub__(self, other):
        # e.g. 5 - a  ⇒ Sub(Constant(5), a)
        return Sub(to_expr(other), self)

    def __truediv__(self, other):
        return Div(self, to_expr(other))

    def __mul__(self, other):
        return Mul(self, to_expr(other))

    def __rmul__(self, other):
        return Mul(to_expr(other), self)

    def __matmul__(self, other):
        return MatMul(self, to_expr(other))

    def __rmatmul__(self, other):
        return MatMul(to_expr(other), self)

    def __neg__(self):
        return Neg(self)

    def __pow__(self, other):
        return Power(self, to_expr(other))

    def __getitem__(self, idx):
        return Index(self, idx)

    @property
    def T(self):
        """Transpose property.

        Returns:
            Transpose: A Transpose expression wrapping this expression

        Example:
            >>> A = Variable(3, 4)
            >>> A_T = A.T  # Creates Transpose(A), result size (4, 3)
        """
        from .linalg import Transpose

        return Transpose(self)

    def children(self) -> List["Expr"]:
        """Return the child expressions of this node.

        Returns:
            list: List of child Expr objects. Empty list for leaf nodes.
        """
        return []

    def check_shape(self) -> Size:
        """
        Compute and validate the size of this expression.

        Recursively checks the sizes of all children, validates that the
        operation is size-compatible, and returns the ``(rows, cols)`` of the
        result. A ``(1, 1)`` operand broadcasts against any size in
        elementwise operations.

        Returns:
            tuple: ``(rows, cols)``

        Raises:
            NotImplementedError: If size checking is not implemented for this node type
            ValueError: If the operand sizes are incompatible
        """
        raise NotImplementedError(f"check_shape() not implemented for {self.__class__.__name__}")

    @property
    def size(self) -> Size:
        return self.check_shape()

    # ==================== SIGN AND CURVATURE ====================

    @property
    def sign(self) -> Sign:
        from openconic.symbolic.dcp import sign_of

        return sign_of(self)

    @property
    def curvature(self):
        from openconic.symbolic.dcp import curvature_of

        return curvature_of(self)

    def is_positive(self) -> bool:
        """Is the expression known to be non-negative?"""
        return self.sign.is_positive()

    def is_negative(self) -> bool:
        """Is the expression known to be non-positive?"""
        return self.sign.is_negative()

    def is_zero(self) -> bool:
        return self.sign.is_zero()

    def is_constant(self) -> bool:
        return self.curvature.is_constant()

    def is_affine(self) -> bool:
        return self.curvature.is_affine()

    def is_convex(self) -> bool:
        return self.curvature.is_convex()

    def is_concave(self) -> bool:
        return self.curvature.is_concave()

    def is_dcp(self) -> bool:
        return self.curvature.is_dcp()

    # ==================== CANONICALIZATION AND VALUES ====================

    def canonicalize(self):
        """Return the canonical form of this expression.

        Returns:
            tuple: ``(AffineExpr, [CanonicalConstraint])`` where the affine
            expression has the size of this node and the constraints enforce
            the epigraph/hypograph relations introduced along the way

        Raises:
            DCPViolationError: If a node below this one breaks the DCP rules
            SizeMismatchError: If a rewrite produces an affine form of the wrong size
        """
        from openconic.symbolic.canonicalizer import Canonicalizer

        return Canonicalizer().canonicalize(self)

    @property
    def value(self):
        """Numeric value from the current leaf values, or None if any is unset."""
        from openconic.symbolic.evaluate import evaluate

        return evaluate(self)

    def variables(self) -> List["Expr"]:
        """Distinct variables in this expression, in first-appearance order."""
        from .variable import Variable

        return _distinct_leaves(self, Variable)

    def parameters(self) -> List["Parameter"]:
        """Distinct parameters (including callback parameters) in first-appearance order."""
        return _distinct_leaves(self, Parameter)

    def constants(self) -> List["Constant"]:
        """Distinct constant nodes in first-appearance order."""
        found = {}

        def visit(node):
            if isinstance(node, Constant):
                found.setdefault(id(node), node)

        traverse(self, visit)
        return list(found.values())

    def pretty(self, indent=0):
        """Generate a pretty-printed string representation of the expression tree.

        Args:
            indent: Current indentation level (default: 0)

        Returns:
            str: Multi-line string representation of the expression tree

        Example:
            >>> expr = Abs(x + y)
            >>> print(expr.pretty())
            Abs
              Add
                Variable
                Variable
        """
        pad = "  " * indent
        lines = [f"{pad}{self.__class__.__name__}"]
        for child in self.children():
            lines.append(child.pretty(indent + 1))
        return "\n".join(lines)


class Atom(Expr):
    """Base class for non-affine operators.

    Atoms are canonicalized by introducing auxiliary variables and cone
    constraints. When an atom has no variables below it, its value only
    depends on constants and parameters and it is canonicalized as a deferred
    numeric evaluation instead.
    """


def _broadcast_size(node: Expr, sizes: List[Size]) -> Size:
    """Common size of elementwise operands where ``(1, 1)`` broadcasts."""
    distinct = {s for s in sizes if s != (1, 1)}
    if len(distinct) > 1:
        raise ValueError(f"{type(node).__name__} sizes not broadcastable: {sizes}")
    return distinct.pop() if distinct else (1, 1)


def _distinct_leaves(expr: Expr, cls) -> list:
    found = {}

    def visit(node):
        if isinstance(node, cls) and node.id not in found:
            found[node.id] = node

    traverse(expr, visit)
    return list(found.values())


# bool, signed and unsigned integer, float
_NUMERIC_KINDS = "biuf"


def _as_matrix(value, what: str):
    """Convert numeric data to a 2-D float array (or CSC matrix for sparse input).

    Scalars become ``(1, 1)`` and 1-D data becomes a column.

    Raises:
        ValidationError: If ``value`` is not numeric or has more than two dimensions
    """
    if sp.issparse(value):
        if value.dtype.kind not in _NUMERIC_KINDS:
            raise ValidationError(f"{what} must contain only numeric entries")
        return sp.csc_matrix(value, dtype=float)
    try:
        raw = np.asarray(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{what} must contain only numeric entries, got {value!r}") from e
    # Strings and objects are rejected, not coerced.
    if raw.dtype.kind not in _NUMERIC_KINDS:
        raise ValidationError(f"{what} must contain only numeric entries, got {value!r}")
    arr = raw.astype(float)
    if arr.ndim == 0:
        return arr.reshape((1, 1))
    if arr.ndim == 1:
        return arr.reshape((-1, 1))
    if arr.ndim > 2:
        raise ValidationError(f"{what} must be at most 2-D, got shape {arr.shape}")
    return arr


class Leaf(Expr):
    """
    Base class for leaf nodes (terminal expressions) in the symbolic expression tree.

    Attributes:
        _size (tuple): ``(rows, cols)`` of the leaf
    """

    def __init__(self, size: Size = (1, 1)):
        super().__init__()
        rows, cols = size
        if int(rows) != rows or int(cols) != cols or rows < 1 or cols < 1:
            raise ValidationError(f"Dimensions must be positive integers, got {size}")
        self._size = (int(rows), int(cols))

    def children(self):
        """Leaf nodes have no children.

        Returns:
            list: Empty list since leaf nodes are terminal
        """
        return []

    def check_shape(self) -> Size:
        return self._size

    def get_data(self):
        """Constructor-level fields of this leaf, for inspection and serialization."""
        raise NotImplementedError(f"get_data() not implemented for {self.__class__.__name__}")


class Constant(Leaf):
    """Constant value expression.

    Represents a fixed numeric value (dense or ``scipy.sparse``) in the
    expression tree. The value is normalized to two dimensions on
    construction; size and sign are derived once and cached.

    Attributes:
        value: The 2-D numpy array (or CSC matrix) held by this constant

    Example:
        >>> c1 = Constant(5.0)        # size (1, 1), sign POSITIVE
        >>> c2 = Constant([1, 2, 3])  # size (3, 1)
        >>> c3 = to_expr(10)          # Also creates a Constant
    """

    def __init__(self, value):
        """Initialize a constant expression.

        Args:
            value: Numeric scalar, sequence, array or sparse matrix

        Raises:
            ValidationError: If ``value`` is not numeric
        """
        value = _as_matrix(value, "Constant value")
        super().__init__(value.shape)
        self._value = value
        self._sign = Sign.from_value(value)

    @property
    def value(self):
        return self._value

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self._value)

    def get_data(self):
        return [self._value]

    def __repr__(self):
        if self._size == (1, 1):
            return f"Const({float(self._value[0, 0])!r})"
        return f"Const(size={self._size}, sign={self._sign})"


class Parameter(Leaf):
    """Constant whose value can change between solves without recompilation.

    A Parameter has a session-unique id, a declared size and sign, and a
    value slot that starts out unset. Every assignment is validated against
    the declared size and sign; a rejected assignment leaves the previous
    value in place.

    Canonicalization only records a reference to the parameter, and assembly
    reads the value, so one canonical form serves any number of re-solves.

    Example:
        >>> p = Parameter(3, 1, sign="NEGATIVE")
        >>> p.value = [-1, -2, -3]
        >>> p.is_negative()
        True
        >>> p.value = [1, -2, -3]   # raises ValidationError, value unchanged
    """

    def __init__(
        self,
        rows: int = 1,
        cols: int = 1,
        name: Optional[str] = None,
        sign: Union[str, Sign] = Sign.UNKNOWN,
        value=None,
        allocator: Optional[IdAllocator] = None,
    ):
        """Initialize a Parameter node.

        Args:
            rows (int): Number of rows
            cols (int): Number of columns
            name (str, optional): Name; defaults to ``param<id>``
            sign: Declared sign, one of "ZERO", "POSITIVE", "NEGATIVE", "UNKNOWN"
            value: Optional initial value, validated like any assignment
            allocator: Id allocator; the current session's by default

        Raises:
            SignDeclarationError: If ``sign`` is not a valid sign name
            ValidationError: If ``value`` does not fit the declaration
        """
        super().__init__((rows, cols))
        self.sign_str = Sign.parse(sign)
        self.id = get_id(allocator)
        self.name = name if name is not None else f"param{self.id}"
        self._value = None
        self._version = 0
        if value is not None:
            self.value = value

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
        self._value = self.validate(val)
        self._version += 1

    @property
    def version(self) -> Optional[int]:
        """Counter bumped on every successful assignment."""
        return self._version

    def validate(self, val):
        """Check a candidate value against the declared size and sign.

        Returns:
            The value as a dense 2-D float array

        Raises:
            ValidationError: If the value is non-numeric, misshapen or of the wrong sign
        """
        val = _as_matrix(val, f"Parameter {self.name!r} value")
        if sp.issparse(val):
            val = val.toarray()
        if val.shape != self._size:
            raise ValidationError(
                f"Invalid dimensions {val.shape} for Parameter {self.name!r} of size {self._size}"
            )
        declared = self.sign_str
        if declared is not Sign.UNKNOWN:
            actual = Sign.from_value(val)
            if (declared.is_positive() and not actual.is_positive()) or (
                declared.is_negative() and not actual.is_negative()
            ):
                raise ValidationError(
                    f"Invalid sign for Parameter {self.name!r}: declared {declared}, got {actual}"
                )
        return val

    def get_data(self):
        return {
            "rows": self.rows,
            "cols": self.cols,
            "name": self.name,
            "sign_str": self.sign_str.value,
            "value": self._value,
        }

    def __repr__(self):
        return f"Parameter({self.rows}, {self.cols}, name={self.name!r}, sign={self.sign_str})"


class CallbackParam(Parameter):
    """Parameter whose value is produced by a callback on every read.

    The value is never stored: each access of :attr:`value` calls the
    callback and validates the result against the declared size and sign,
    because whatever the callback reads from may have changed since the last
    call. Assembly reads it once per assembly, into its parameter snapshot.

    Example:
        >>> readings = iter([A, B])
        >>> p = CallbackParam(lambda: next(readings), rows=2, cols=1)
        >>> p.value  # A
        >>> p.value  # B
    """

    def __init__(
        self,
        callback: Callable[[], object],
        rows: int = 1,
        cols: int = 1,
        name: Optional[str] = None,
        sign: Union[str, Sign] = Sign.UNKNOWN,
        allocator: Optional[IdAllocator] = None,
    ):
        if not callable(callback):
            raise ValidationError("CallbackParam callback must be callable")
        super().__init__(rows, cols, name=name, sign=sign, allocator=allocator)
        self.callback = callback

    @property
    def value(self):
        return self.validate(self.callback())

    @value.setter
    def value(self, val):
        raise ValidationError(
            f"CallbackParam {self.name!r} takes its value from its callback and cannot be assigned"
        )

    @property
    def version(self) -> Optional[int]:
        # Callback values can change at any time; never treat a snapshot as current.
        return None

    def get_data(self):
        return {
            "callback": self.callback,
            "rows": self.rows,
            "cols": self.cols,
            "name": self.name,
            "sign_str": self.sign_str.value,
        }

    def __repr__(self):
        return f"CallbackParam({self.rows}, {self.cols}, name={self.name!r}, sign={self.sign_str})"


def get_data(leaf: Leaf):
    """Return the constructor-level fields of a leaf.

    Constants give ``[value]``; parameters give a dict of rows, cols, name,
    sign_str and value; callback parameters give the callback instead of a value;
    variables give rows, cols and name.
    """
    return leaf.get_data()


def to_expr(x: Union[Expr, float, int, np.ndarray]) -> Expr:
    """Convert a value to an Expr if it is not already one.

    Wraps numeric values, arrays and sparse matrices as Constant expressions,
    leaving Expr instances unchanged. Used internally by operators to ensure
    operands are proper Expr objects.

    Example:
        >>> to_expr(5.0)  # Returns Constant(5.0)
        >>> to_expr(var)  # Returns var unchanged if var is an Expr
    """
    return x if isinstance(x, Expr) else Constant(x)


def traverse(expr: Expr, visit: Callable[[Expr], None]):
    """Depth-first traversal of an expression tree.

    Visits each node by applying ``visit`` to the current node, then
    recursively visiting all children.

    Example:
        >>> def print_nodes(node):
        ...     print(node.__class__.__name__)
        >>> traverse(my_expr, print_nodes)
    """
    visit(expr)
    for child in expr.children():
        traverse(child, visit)


# ==================== AFFINE OPERATORS ====================


class Add(Expr):
    """Elementwise addition of two or more expressions.

    A ``(1, 1)`` term is broadcast against the others. Can be created using
    the + operator on Expr objects.

    Attributes:
        terms: List of expression operands to add together

    Example:
        >>> x = Variable(3)
        >>> y = Variable(3)
        >>> z = x + y + 5  # Add(Add(x, y), Constant(5))
    """

    def __init__(self, *args):
        """Initialize an addition operation.

        Raises:
            ValueError: If fewer than two operands are provided
        """
        if len(args) < 2:
            raise ValueError("Add requires two or more operands")
        self.terms = [to_expr(a) for a in args]

    def children(self):
        return list(self.terms)

    def check_shape(self) -> Size:
        return _broadcast_size(self, [t.check_shape() for t in self.terms])

    def __repr__(self):
        inner = " + ".join(repr(e) for e in self.terms)
        return f"({inner})"


class Sub(Expr):
    """Elementwise subtraction (left - right), with scalar broadcasting."""

    def __init__(self, left, right):
        self.left = to_expr(left)
        self.right = to_expr(right)

    def children(self):
        return [self.left, self.right]

    def check_shape(self) -> Size:
        return _broadcast_size(self, [self.left.check_shape(), self.right.check_shape()])

    def __repr__(self):
        return f"({self.left!r} - {self.right!r})"


class Neg(Expr):
    """Elementwise negation (unary minus)."""

    def __init__(self, operand):
        self.operand = to_expr(operand)

    def children(self):
        return [self.operand]

    def check_shape(self) -> Size:
        return self.operand.check_shape()

    def __repr__(self):
        return f"(-{self.operand!r})"


class Mul(Expr):
    """Elementwise (Hadamard) product of two expressions.

    One of the operands must be constant for the product to be DCP; a
    ``(1, 1)`` operand scales the other. For matrix multiplication, use
    MatMul or the @ operator.

    Example:
        >>> x = Variable(3)
        >>> y = 2 * x          # Mul(Constant(2), x)
        >>> z = [1, 2, 3] * x  # elementwise weights
    """

    def __init__(self, left, right):
        self.left = to_expr(left)
        self.right = to_expr(right)

    def children(self):
        return [self.left, self.right]

    def check_shape(self) -> Size:
        return _broadcast_size(self, [self.left.check_shape(), self.right.check_shape()])

    def __repr__(self):
        return f"({self.left!r} * {self.right!r})"


class Div(Expr):
    """Elementwise division (left / right) by a constant."""

    def __init__(self, left, right):
        self.left = to_expr(left)
        self.right = to_expr(right)

    def children(self):
        return [self.left, self.right]

    def check_shape(self) -> Size:
        return _broadcast_size(self, [self.left.check_shape(), self.right.check_shape()])

    def __repr__(self):
        return f"({self.left!r} / {self.right!r})"


class MatMul(Expr):
    """Matrix product ``left @ right``; one side must be constant to be DCP.

    Example:
        >>> A = np.ones((2, 3))
        >>> x = Variable(3)
        >>> y = A @ x  # MatMul(Constant(A), x), size (2, 1)
    """

    def __init__(self, left, right):
        self.left = to_expr(left)
        self.right = to_expr(right)

    def children(self):
        return [self.left, self.right]

    def check_shape(self) -> Size:
        L, R = self.left.check_shape(), self.right.check_shape()
        if L[1] != R[0]:
            raise ValueError(f"MatMul incompatible: {L} @ {R}")
        return (L[0], R[1])

    def __repr__(self):
        return f"({self.left!r} @ {self.right!r})"


class Sum(Expr):
    """Sum of all entries of an expression, giving a ``(1, 1)`` result.

    Example:
        >>> x = Variable(3, 4)
        >>> total = Sum(x)  # size (1, 1)
    """

    def __init__(self, operand):
        self.operand = to_expr(operand)

    def children(self):
        return [self.operand]

    def check_shape(self) -> Size:
        # Validate the operand even though the result is always scalar
        self.operand.check_shape()
        return (1, 1)

    def __repr__(self):
        return f"sum({self.operand!r})"


class Index(Expr):
    """Indexing and slicing of an expression.

    Keys follow NumPy conventions but always keep two dimensions: integers
    select length-one ranges, a single key indexes rows, boolean masks pick
    the positions where they are True, and two integer sequences select the
    sub-matrix of their cross product.

    Attributes:
        base: Expression to index into
        index: The key as given by the user

    Example:
        >>> x = Variable(10)
        >>> y = x[0:5]   # size (5, 1)
        >>> z = x[3]     # size (1, 1)
    """

    def __init__(self, base: Expr, index):
        self.base = to_expr(base)
        self.index = index

    def children(self):
        return [self.base]

    @property
    def key(self):
        """The normalized two-dimensional key."""
        from openconic.symbolic.affine import normalize_key

        return normalize_key(self.index, self.base.check_shape())

    def check_shape(self) -> Size:
        base_size = self.base.check_shape()
        dummy = np.zeros(base_size)
        try:
            result = dummy[self.key]
        except (IndexError, ValueError) as e:
            raise ValueError(f"Bad index {self.index!r} for size {base_size}") from e
        if 0 in result.shape:
            raise ValueError(f"Index {self.index!r} selects no entries of size {base_size}")
        return result.shape

    def __repr__(self):
        return f"{self.base!r}[{self.index!r}]"


class Power(Atom):
    """Elementwise power ``base ** exponent`` with a constant scalar exponent.

    Exponents 1, 2, 0.5 and -1 have conic graph implementations (identity,
    square, square root, reciprocal on the positive reals); any other exponent
    has unknown curvature unless the base is constant.
    """

    def __init__(self, base, exponent):
        self.base = to_expr(base)
        self.exponent = to_expr(exponent)

    def children(self):
        return [self.base, self.exponent]

    @property
    def p(self) -> Optional[float]:
        """The exponent as a float, or None when it is not a scalar Constant."""
        if isinstance(self.exponent, Constant) and self.exponent.size == (1, 1):
            value = self.exponent.value
            return float(value[0, 0]) if not sp.issparse(value) else float(value.toarray()[0, 0])
        return None

    def check_shape(self) -> Size:
        if self.exponent.check_shape() != (1, 1):
            raise ValueError(f"Power exponent must be a scalar, got {self.exponent.check_shape()}")
        return self.base.check_shape()

    def __repr__(self):
        return f"({self.base!r})**({self.exponent!r})"


# ==================== CONSTRAINTS ====================


class Constraint(Expr):
    """Abstract base class for constraints between two expressions.

    Attributes:
        lhs: Left-hand side expression
        rhs: Right-hand side expression

    Note:
        Constraints canonicalize to ``(None, [CanonicalConstraint])``: they
        have no affine value of their own, only the conic constraints they
        impose.
    """

    def __init__(self, lhs: Expr, rhs: Expr):
        self.lhs = to_expr(lhs)
        self.rhs = to_expr(rhs)

    def children(self):
        return [self.lhs, self.rhs]

    def check_shape(self) -> Size:
        """Check that the two sides broadcast; returns the broadcast size."""
        return _broadcast_size(self, [self.lhs.check_shape(), self.rhs.check_shape()])


class Equality(Constraint):
    """Equality constraint ``lhs == rhs``; both sides must be affine.

    Example:
        >>> x = Variable(3)
        >>> constraint = x == 0  # Equality(x, Constant(0))
    """

    def __repr__(self):
        return f"{self.lhs!r} == {self.rhs!r}"


class Inequality(Constraint):
    """Inequality constraint ``lhs <= rhs``; ``lhs`` convex and ``rhs`` concave.

    Example:
        >>> x = Variable(3)
        >>> constraint = x <= 10  # Inequality(x, Constant(10))
    """

    def __repr__(self):
        return f"{self.lhs!r} <= {self.rhs!r}"
