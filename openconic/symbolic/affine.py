"""Affine expressions: the output language of canonicalization.

An :class:`AffineExpr` is a small tree of linear operators over the global
variable vector. Leaves reference variables, parameters, constants or deferred
constant-valued expression nodes; inner nodes apply a linear map. The tree
holds references rather than numbers wherever a parameter is involved, so a
canonical form built once stays valid while parameter values change.

Numeric data is produced by :func:`get_coefficients`, which turns an
AffineExpr and a snapshot of parameter values into one sparse block per
variable plus a constant offset. All matrices are vectorized column-major
(Fortran order), so an ``(m, n)`` expression contributes ``m * n`` rows.

Example:
    Coefficients of ``2 * x + 1`` for a ``(3, 1)`` variable ``x``::

        x_aff = variable(x.id, (3, 1))
        expr = sum_expr([mul_elemwise(const(2.0 * np.ones((3, 1))), x_aff), const(np.ones((3, 1)))])
        coeffs = get_coefficients(expr, {})
        coeffs[x.id].toarray()        # 2 * identity(3)
        coeffs[CONSTANT].toarray()    # column of ones
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from openconic.errors import AssemblyError

# Key of the constant offset column in a coefficient dictionary.
CONSTANT = "constant"


class LinOpKind(str, Enum):
    VARIABLE = "variable"
    PARAM = "param"
    CONST = "const"
    EVAL = "eval"
    SUM = "sum"
    NEG = "neg"
    PROMOTE = "promote"
    MUL = "mul"
    RMUL = "rmul"
    MUL_ELEM = "mul_elem"
    DIV = "div"
    SUM_ENTRIES = "sum_entries"
    INDEX = "index"
    TRANSPOSE = "transpose"
    RESHAPE = "reshape"
    VSTACK = "vstack"
    HSTACK = "hstack"


LEAF_KINDS = (LinOpKind.VARIABLE, LinOpKind.PARAM, LinOpKind.CONST, LinOpKind.EVAL)


@dataclass(frozen=True, eq=False)
class AffineExpr:
    """A node in an affine operator tree.

    Attributes:
        kind: Which linear operator this node applies
        size: ``(rows, cols)`` of the value this node produces
        args: Operand nodes, in operator order
        data: Operator payload (variable id, Parameter, constant array,
            deferred Expr node, or flat index array)
    """

    kind: LinOpKind
    size: Tuple[int, int]
    args: Tuple["AffineExpr", ...] = ()
    data: Any = None

    @property
    def rows(self) -> int:
        return self.size[0]

    @property
    def cols(self) -> int:
        return self.size[1]

    @property
    def numel(self) -> int:
        return self.size[0] * self.size[1]

    def variables(self) -> Dict[int, Tuple[int, int]]:
        """Map of variable id to size for every variable referenced below this node."""
        found: Dict[int, Tuple[int, int]] = {}
        stack = [self]
        while stack:
            node = stack.pop()
            if node.kind is LinOpKind.VARIABLE:
                found[node.data] = node.size
            stack.extend(node.args)
        return found

    def is_constant(self) -> bool:
        """True when no variable appears below this node."""
        return not self.variables()

    def structure(self) -> tuple:
        """Nested ``(kind, size, children)`` tuple, ignoring payloads.

        Two canonical forms of the same expression tree have equal structure
        even though their auxiliary variables have different ids.
        """
        return (self.kind.value, self.size, tuple(a.structure() for a in self.args))

    def __repr__(self):
        if self.kind in LEAF_KINDS:
            return f"AffineExpr({self.kind.value}, size={self.size})"
        inner = ", ".join(repr(a) for a in self.args)
        return f"AffineExpr({self.kind.value}, size={self.size}, [{inner}])"


# ==================== CONSTRUCTORS ====================


def _as_size(size) -> Tuple[int, int]:
    return (int(size[0]), int(size[1]))


def variable(var_id: int, size) -> AffineExpr:
    return AffineExpr(LinOpKind.VARIABLE, _as_size(size), data=var_id)


def param(parameter) -> AffineExpr:
    """Symbolic reference to a parameter's value slot."""
    return AffineExpr(LinOpKind.PARAM, _as_size(parameter.size), data=parameter)


def const(value) -> AffineExpr:
    """Constant block; ``value`` must be a 2-D array or sparse matrix."""
    if not sp.issparse(value):
        value = np.atleast_2d(np.asarray(value, dtype=float))
    return AffineExpr(LinOpKind.CONST, _as_size(value.shape), data=value)


def deferred(node) -> AffineExpr:
    """Constant-valued expression node evaluated numerically at assembly time."""
    return AffineExpr(LinOpKind.EVAL, _as_size(node.size), data=node)


def promote(expr: AffineExpr, size) -> AffineExpr:
    """Broadcast a ``(1, 1)`` expression to ``size``."""
    size = _as_size(size)
    if expr.size == size:
        return expr
    if expr.size != (1, 1):
        raise ValueError(f"Only scalars can be promoted, got {expr.size} -> {size}")
    return AffineExpr(LinOpKind.PROMOTE, size, (expr,))


def sum_expr(terms: Sequence[AffineExpr]) -> AffineExpr:
    """Sum of terms, promoting scalar terms to the common size."""
    terms = list(terms)
    if len(terms) == 1:
        return terms[0]
    sizes = {t.size for t in terms if t.size != (1, 1)}
    if len(sizes) > 1:
        raise ValueError(f"Cannot sum affine expressions of sizes {sorted(sizes)}")
    size = sizes.pop() if sizes else (1, 1)
    return AffineExpr(LinOpKind.SUM, size, tuple(promote(t, size) for t in terms))


def neg_expr(expr: AffineExpr) -> AffineExpr:
    return AffineExpr(LinOpKind.NEG, expr.size, (expr,))


def sub_expr(lhs: AffineExpr, rhs: AffineExpr) -> AffineExpr:
    return sum_expr([lhs, neg_expr(rhs)])


def mul_expr(lhs: AffineExpr, rhs: AffineExpr) -> AffineExpr:
    """Matrix product ``lhs @ rhs`` with a constant ``lhs``."""
    if lhs.cols != rhs.rows:
        raise ValueError(f"Incompatible product {lhs.size} @ {rhs.size}")
    return AffineExpr(LinOpKind.MUL, (lhs.rows, rhs.cols), (lhs, rhs))


def rmul_expr(lhs: AffineExpr, rhs: AffineExpr) -> AffineExpr:
    """Matrix product ``lhs @ rhs`` with a constant ``rhs``."""
    if lhs.cols != rhs.rows:
        raise ValueError(f"Incompatible product {lhs.size} @ {rhs.size}")
    return AffineExpr(LinOpKind.RMUL, (lhs.rows, rhs.cols), (lhs, rhs))


def mul_elemwise(constant: AffineExpr, expr: AffineExpr) -> AffineExpr:
    """Elementwise product with a constant; either side may be a scalar."""
    size = expr.size if expr.size != (1, 1) else constant.size
    return AffineExpr(
        LinOpKind.MUL_ELEM, size, (promote(constant, size), promote(expr, size))
    )


def div_expr(expr: AffineExpr, constant: AffineExpr) -> AffineExpr:
    """Elementwise division by a constant; either side may be a scalar."""
    size = expr.size if expr.size != (1, 1) else constant.size
    return AffineExpr(LinOpKind.DIV, size, (promote(expr, size), promote(constant, size)))


def sum_entries(expr: AffineExpr) -> AffineExpr:
    return AffineExpr(LinOpKind.SUM_ENTRIES, (1, 1), (expr,))


def normalize_key(key, size) -> tuple:
    """Turn a user index into a key that keeps both matrix dimensions.

    Integers become length-one slices, a single key indexes rows, boolean
    masks select the positions where they are True, and two integer
    sequences select the sub-matrix of their cross product.
    """
    if not isinstance(key, tuple):
        key = (key, slice(None))
    if len(key) != 2:
        raise ValueError(f"Index {key!r} must have at most two entries")

    parts = []
    for k, extent in zip(key, size):
        if isinstance(k, (bool, np.bool_)):
            raise ValueError(f"Index {k!r} must be an integer, slice, sequence or mask")
        if isinstance(k, (int, np.integer)):
            i = int(k) + extent if k < 0 else int(k)
            if not 0 <= i < extent:
                raise ValueError(f"Index {k} out of range for dimension {extent}")
            parts.append(slice(i, i + 1))
        elif isinstance(k, slice):
            parts.append(k)
        else:
            arr = np.asarray(k)
            if arr.dtype == bool:
                if arr.size != extent:
                    raise ValueError(
                        f"Boolean index of length {arr.size} does not match dimension {extent}"
                    )
                parts.append(np.flatnonzero(arr))
            elif arr.size == 0 or arr.dtype.kind in "iu":
                parts.append(arr.astype(int).ravel())
            else:
                raise ValueError(f"Index {k!r} must contain integers or booleans")
    if all(isinstance(p, np.ndarray) for p in parts):
        return np.ix_(parts[0], parts[1])
    return tuple(parts)


def index(expr: AffineExpr, key) -> AffineExpr:
    """Select entries of ``expr`` with a key produced by :func:`normalize_key`."""
    positions = np.arange(expr.numel).reshape(expr.size, order="F")[key]
    return AffineExpr(
        LinOpKind.INDEX, positions.shape, (expr,), data=positions.ravel(order="F")
    )


def transpose(expr: AffineExpr) -> AffineExpr:
    return AffineExpr(LinOpKind.TRANSPOSE, (expr.cols, expr.rows), (expr,))


def reshape(expr: AffineExpr, size) -> AffineExpr:
    size = _as_size(size)
    if size[0] * size[1] != expr.numel:
        raise ValueError(f"Cannot reshape {expr.size} into {size}")
    return AffineExpr(LinOpKind.RESHAPE, size, (expr,))


def vstack(exprs: Sequence[AffineExpr]) -> AffineExpr:
    exprs = tuple(exprs)
    cols = {e.cols for e in exprs}
    if len(cols) != 1:
        raise ValueError(f"vstack column counts differ: {[e.size for e in exprs]}")
    return AffineExpr(LinOpKind.VSTACK, (sum(e.rows for e in exprs), cols.pop()), exprs)


def hstack(exprs: Sequence[AffineExpr]) -> AffineExpr:
    exprs = tuple(exprs)
    rows = {e.rows for e in exprs}
    if len(rows) != 1:
        raise ValueError(f"hstack row counts differ: {[e.size for e in exprs]}")
    return AffineExpr(LinOpKind.HSTACK, (rows.pop(), sum(e.cols for e in exprs)), exprs)


# ==================== COEFFICIENT EXTRACTION ====================

Coefficients = Dict[Any, sp.csc_matrix]

_COEFF_RULES: Dict[LinOpKind, Callable[[AffineExpr, Mapping[int, np.ndarray]], Coefficients]] = {}


def coeff_rule(kind: LinOpKind):
    """Decorator to register the coefficient rule for a linear operator kind."""

    def register(fn):
        _COEFF_RULES[kind] = fn
        return fn

    return register


def get_coefficients(expr: AffineExpr, values: Mapping[int, np.ndarray]) -> Coefficients:
    """Numeric coefficients of an affine expression.

    Args:
        expr: Affine expression to evaluate
        values: Snapshot mapping parameter id to its 2-D value

    Returns:
        dict: Variable id -> sparse block of shape ``(expr.numel, var_numel)``,
        plus ``CONSTANT`` -> sparse column of shape ``(expr.numel, 1)`` when the
        expression has a non-trivial offset
    """
    fn = _COEFF_RULES.get(expr.kind)
    if fn is None:
        raise NotImplementedError(f"No coefficient rule for {expr.kind.value}")
    return fn(expr, values)


def const_value(expr: AffineExpr, values: Mapping[int, np.ndarray]) -> np.ndarray:
    """Evaluate a variable-free affine expression to a dense 2-D array."""
    coeffs = get_coefficients(expr, values)
    if set(coeffs) - {CONSTANT}:
        raise ValueError("Expected a constant affine expression")
    if CONSTANT not in coeffs:
        return np.zeros(expr.size)
    return coeffs[CONSTANT].toarray().reshape(expr.size, order="F")


def _vec(value) -> sp.csc_matrix:
    if sp.issparse(value):
        rows, cols = value.shape
        return sp.csc_matrix(value.reshape((rows * cols, 1), order="F"))
    return sp.csc_matrix(np.asarray(value, dtype=float).reshape((-1, 1), order="F"))


def _apply(op, coeffs: Coefficients) -> Coefficients:
    return {key: sp.csc_matrix(op @ block) for key, block in coeffs.items()}


def _accumulate(total: Coefficients, coeffs: Coefficients) -> Coefficients:
    for key, block in coeffs.items():
        total[key] = total[key] + block if key in total else block
    return total


def _selector(positions: np.ndarray, width: int) -> sp.csc_matrix:
    """Matrix whose row ``i`` picks entry ``positions[i]`` of a length-``width`` vector."""
    count = len(positions)
    return sp.csc_matrix((np.ones(count), (np.arange(count), positions)), shape=(count, width))


@coeff_rule(LinOpKind.VARIABLE)
def _coeff_variable(expr, values):
    return {expr.data: sp.identity(expr.numel, format="csc")}


@coeff_rule(LinOpKind.PARAM)
def _coeff_param(expr, values):
    parameter = expr.data
    if parameter.id not in values:
        raise AssemblyError(f"Parameter {parameter.name!r} has no value in the snapshot")
    return {CONSTANT: _vec(values[parameter.id])}


@coeff_rule(LinOpKind.CONST)
def _coeff_const(expr, values):
    return {CONSTANT: _vec(expr.data)}


@coeff_rule(LinOpKind.EVAL)
def _coeff_eval(expr, values):
    from openconic.symbolic.evaluate import evaluate

    return {CONSTANT: _vec(evaluate(expr.data, values))}


@coeff_rule(LinOpKind.SUM)
def _coeff_sum(expr, values):
    total: Coefficients = {}
    for arg in expr.args:
        _accumulate(total, get_coefficients(arg, values))
    return total


@coeff_rule(LinOpKind.NEG)
def _coeff_neg(expr, values):
    return {key: -block for key, block in get_coefficients(expr.args[0], values).items()}


@coeff_rule(LinOpKind.PROMOTE)
def _coeff_promote(expr, values):
    ones = sp.csc_matrix(np.ones((expr.numel, 1)))
    return _apply(ones, get_coefficients(expr.args[0], values))


@coeff_rule(LinOpKind.MUL)
def _coeff_mul(expr, values):
    # vec(A X) = (I_n kron A) vec(X)
    lhs = const_value(expr.args[0], values)
    op = sp.kron(sp.identity(expr.cols), sp.csc_matrix(lhs))
    return _apply(op, get_coefficients(expr.args[1], values))


@coeff_rule(LinOpKind.RMUL)
def _coeff_rmul(expr, values):
    # vec(X B) = (B^T kron I_m) vec(X)
    rhs = const_value(expr.args[1], values)
    op = sp.kron(sp.csc_matrix(rhs.T), sp.identity(expr.rows))
    return _apply(op, get_coefficients(expr.args[0], values))


@coeff_rule(LinOpKind.MUL_ELEM)
def _coeff_mul_elem(expr, values):
    scale = const_value(expr.args[0], values).ravel(order="F")
    return _apply(sp.diags(scale), get_coefficients(expr.args[1], values))


@coeff_rule(LinOpKind.DIV)
def _coeff_div(expr, values):
    divisor = const_value(expr.args[1], values).ravel(order="F")
    return _apply(sp.diags(1.0 / divisor), get_coefficients(expr.args[0], values))


@coeff_rule(LinOpKind.SUM_ENTRIES)
def _coeff_sum_entries(expr, values):
    arg = expr.args[0]
    ones = sp.csc_matrix(np.ones((1, arg.numel)))
    return _apply(ones, get_coefficients(arg, values))


@coeff_rule(LinOpKind.INDEX)
def _coeff_index(expr, values):
    arg = expr.args[0]
    return _apply(_selector(expr.data, arg.numel), get_coefficients(arg, values))


@coeff_rule(LinOpKind.TRANSPOSE)
def _coeff_transpose(expr, values):
    arg = expr.args[0]
    positions = np.arange(arg.numel).reshape(arg.size, order="F").T.ravel(order="F")
    return _apply(_selector(positions, arg.numel), get_coefficients(arg, values))


@coeff_rule(LinOpKind.RESHAPE)
def _coeff_reshape(expr, values):
    # Column-major reshape leaves the vectorization unchanged.
    return get_coefficients(expr.args[0], values)


@coeff_rule(LinOpKind.HSTACK)
def _coeff_hstack(expr, values):
    total: Coefficients = {}
    offset = 0
    for arg in expr.args:
        positions = np.arange(offset, offset + arg.numel)
        placement = _selector(positions, expr.numel).T
        _accumulate(total, _apply(placement, get_coefficients(arg, values)))
        offset += arg.numel
    return total


@coeff_rule(LinOpKind.VSTACK)
def _coeff_vstack(expr, values):
    total: Coefficients = {}
    row_offset = 0
    for arg in expr.args:
        local_rows, local_cols = np.meshgrid(
            np.arange(arg.rows), np.arange(arg.cols), indexing="ij"
        )
        positions = (row_offset + local_rows + local_cols * expr.rows).ravel(order="F")
        placement = _selector(positions, expr.numel).T
        _accumulate(total, _apply(placement, get_coefficients(arg, values)))
        row_offset += arg.rows
    return total


def collect_variables(exprs: Sequence[AffineExpr]) -> List[Tuple[int, Tuple[int, int]]]:
    """All variables referenced by ``exprs`` as ``(id, size)`` pairs sorted by id."""
    found: Dict[int, Tuple[int, int]] = {}
    for expr in exprs:
        found.update(expr.variables())
    return sorted(found.items())
