"""Numeric evaluation of expression trees.

:func:`evaluate` computes the value of an expression from its leaves. It backs
``Expr.value`` and the deferred (EVAL) nodes that canonicalization emits for
variable-free nonlinear subtrees, which assembly evaluates against its
parameter snapshot.

All values are dense 2-D numpy arrays.
"""

from functools import reduce
from typing import Callable, Dict, List, Mapping, Optional, Type

import numpy as np
import scipy.sparse as sp

from openconic.symbolic.expr import (
    Abs,
    Add,
    Constant,
    Div,
    Expr,
    Hstack,
    Index,
    InvPos,
    Leaf,
    MatMul,
    Max,
    MaxEntries,
    Min,
    MinEntries,
    Mul,
    Neg,
    Norm,
    Parameter,
    PositivePart,
    Power,
    QuadOverLin,
    Reshape,
    Sqrt,
    Square,
    Sub,
    Sum,
    Transpose,
    Vstack,
)

_EVAL_RULES: Dict[Type[Expr], Callable[[Expr, List[np.ndarray]], np.ndarray]] = {}


def eval_rule(*expr_classes: Type[Expr]):
    def register(fn: Callable[[Expr, List[np.ndarray]], np.ndarray]):
        for cls in expr_classes:
            _EVAL_RULES[cls] = fn
        return fn

    return register


def _dense(value) -> np.ndarray:
    if sp.issparse(value):
        return value.toarray()
    return np.asarray(value, dtype=float)


def _leaf_value(node: Leaf, values: Optional[Mapping[int, np.ndarray]]):
    if isinstance(node, Constant):
        return _dense(node.value)
    if isinstance(node, Parameter) and values is not None and node.id in values:
        return _dense(values[node.id])
    value = node.value
    return None if value is None else _dense(value)


def evaluate(expr: Expr, values: Optional[Mapping[int, np.ndarray]] = None) -> Optional[np.ndarray]:
    """Evaluate ``expr`` numerically.

    Args:
        expr: Expression to evaluate
        values: Optional snapshot mapping parameter id to value. Parameters
            missing from the snapshot use their current value.

    Returns:
        The value as a 2-D array, or None if a leaf below ``expr`` has no value

    Raises:
        NotImplementedError: If ``expr`` has no numeric value (constraints)
    """
    if isinstance(expr, Leaf):
        return _leaf_value(expr, values)
    fn = _EVAL_RULES.get(type(expr))
    if fn is None:
        raise NotImplementedError(f"No evaluation rule for {type(expr).__name__}")
    args = []
    for child in expr.children():
        value = evaluate(child, values)
        if value is None:
            return None
        args.append(value)
    return fn(expr, args)


# ==================== AFFINE OPERATORS ====================


@eval_rule(Add)
def _eval_add(node, args):
    return reduce(np.add, args)


@eval_rule(Sub)
def _eval_sub(node, args):
    return args[0] - args[1]


@eval_rule(Neg)
def _eval_neg(node, args):
    return -args[0]


@eval_rule(Mul)
def _eval_mul(node, args):
    return args[0] * args[1]


@eval_rule(Div)
def _eval_div(node, args):
    return args[0] / args[1]


@eval_rule(MatMul)
def _eval_matmul(node, args):
    return args[0] @ args[1]


@eval_rule(Sum)
def _eval_sum(node, args):
    return np.sum(args[0]).reshape((1, 1))


@eval_rule(Index)
def _eval_index(node, args):
    return args[0][node.key]


@eval_rule(Transpose)
def _eval_transpose(node, args):
    return args[0].T


@eval_rule(Reshape)
def _eval_reshape(node, args):
    return args[0].reshape(node.new_size, order="F")


@eval_rule(Hstack)
def _eval_hstack(node, args):
    return np.hstack(args)


@eval_rule(Vstack)
def _eval_vstack(node, args):
    return np.vstack(args)


# ==================== NONLINEAR ATOMS ====================


@eval_rule(Abs)
def _eval_abs(node, args):
    return np.abs(args[0])


@eval_rule(Square)
def _eval_square(node, args):
    return np.square(args[0])


@eval_rule(Sqrt)
def _eval_sqrt(node, args):
    return np.sqrt(args[0])


@eval_rule(InvPos)
def _eval_inv_pos(node, args):
    return 1.0 / args[0]


@eval_rule(PositivePart)
def _eval_pos(node, args):
    return np.maximum(args[0], 0.0)


@eval_rule(Max)
def _eval_max(node, args):
    return reduce(np.maximum, args)


@eval_rule(Min)
def _eval_min(node, args):
    return reduce(np.minimum, args)


@eval_rule(MaxEntries)
def _eval_max_entries(node, args):
    return np.max(args[0]).reshape((1, 1))


@eval_rule(MinEntries)
def _eval_min_entries(node, args):
    return np.min(args[0]).reshape((1, 1))


@eval_rule(Norm)
def _eval_norm(node, args):
    return np.linalg.norm(args[0].ravel(), ord=node.ord).reshape((1, 1))


@eval_rule(QuadOverLin)
def _eval_quad_over_lin(node, args):
    x, y = args
    return (np.sum(np.square(x)) / y[0, 0]).reshape((1, 1))


@eval_rule(Power)
def _eval_power(node, args):
    base, exponent = args
    return np.power(base, exponent[0, 0])

