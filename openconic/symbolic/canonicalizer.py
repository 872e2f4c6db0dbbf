"""Expression canonicalization.

Canonicalization rewrites an expression tree into a pair
``(AffineExpr, [CanonicalConstraint])``. The affine expression has the size of
the source node; the constraints enforce the relations between the auxiliary
variables introduced along the way and the rest of the problem.

The rewrite is bottom-up. For each node the :class:`Canonicalizer`:

1. canonicalizes the children,
2. checks the node's DCP precondition (its curvature must be known),
3. applies the node's graph implementation from the rule table below,
4. checks that the affine result has the node's size.

Affine operators combine their children's affine expressions directly.
Nonlinear atoms introduce a fresh auxiliary variable ``t`` together with
epigraph (convex atoms) or hypograph (concave atoms) constraints, so that
``t`` can stand in for the atom wherever DCP allows it. Atoms with no
variables below them are not rewritten at all: they become deferred EVAL
nodes that assembly evaluates numerically from its parameter snapshot.

Example:
    Canonical form of ``|x| <= 1``::

        x = Variable(3)
        aff, constraints = Canonicalizer().canonicalize(Abs(x) <= 1)
        # aff is None; constraints are
        #   NonNegConstraint(t - x), NonNegConstraint(t + x)   from Abs
        #   NonNegConstraint(1 - t)                            the inequality itself
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple, Type

import numpy as np

from openconic.config import CanonicalizationConfig
from openconic.errors import DCPViolationError, SizeMismatchError
from openconic.symbolic import affine as aff
from openconic.symbolic.affine import AffineExpr
from openconic.symbolic.cones import (
    CanonicalConstraint,
    NonNegConstraint,
    SOCConstraint,
    ZeroConstraint,
)
from openconic.symbolic.dcp import curvature_of, sign_of
from openconic.symbolic.expr import (
    SOC,
    Abs,
    Add,
    Atom,
    CallbackParam,
    Constant,
    Div,
    Equality,
    Expr,
    Hstack,
    Index,
    Inequality,
    InvPos,
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
    Variable,
    Vstack,
)
from openconic.symbolic.ids import IdAllocator

logger = logging.getLogger(__name__)

CanonicalForm = Tuple[Optional[AffineExpr], List[CanonicalConstraint]]

_GRAPH_IMPLEMENTATIONS: Dict[Type[Expr], Callable] = {}


def graph_implementation(*expr_classes: Type[Expr]):
    """Register the canonical rewrite for one or more expression types.

    The decorated function receives the canonicalizer, the node and the
    affine forms of the node's children, and returns
    ``(affine, [new constraints])``.
    """

    def register(fn: Callable[["Canonicalizer", Expr, List[AffineExpr]], CanonicalForm]):
        for cls in expr_classes:
            _GRAPH_IMPLEMENTATIONS[cls] = fn
        return fn

    return register


def merge_constraints(groups) -> List[CanonicalConstraint]:
    """Concatenate constraint lists in order, keeping the first occurrence of each."""
    seen = set()
    merged = []
    for group in groups:
        for constraint in group:
            if id(constraint) not in seen:
                seen.add(id(constraint))
                merged.append(constraint)
    return merged


class Canonicalizer:
    """Canonicalizes expressions, sharing work across calls.

    A canonicalizer owns the memo table for shared subexpressions and the
    list of auxiliary variables it created. Use one canonicalizer per
    problem: every node is rewritten at most once, so a subexpression that
    appears in both the objective and a constraint shares one set of
    auxiliary variables.

    If a call fails, everything the call added to the memo table and the
    auxiliary variable list is discarded before the error propagates.

    Args:
        config: Canonicalization settings
        allocator: Id allocator for auxiliary variables; the current session's by default

    Attributes:
        aux_variables (list): Auxiliary Variables introduced so far, in creation order
    """

    def __init__(
        self,
        config: Optional[CanonicalizationConfig] = None,
        allocator: Optional[IdAllocator] = None,
    ):
        self.config = config if config is not None else CanonicalizationConfig()
        self.allocator = allocator
        self.aux_variables: List[Variable] = []
        # id(node) -> (node, canonical form); the node is kept alive so its id stays unique
        self._memo: Dict[int, Tuple[Expr, CanonicalForm]] = {}

    def new_variable(self, size) -> AffineExpr:
        """Create an auxiliary variable and return its affine reference."""
        var = Variable(
            size[0], size[1], name=f"aux{len(self.aux_variables)}", allocator=self.allocator
        )
        self.aux_variables.append(var)
        return aff.variable(var.id, var.size)

    def canonicalize(self, expr: Expr) -> CanonicalForm:
        """Canonicalize ``expr``.

        Returns:
            tuple: ``(affine, constraints)``; ``affine`` is None for constraint nodes

        Raises:
            DCPViolationError: At the first node whose DCP precondition fails
            SizeMismatchError: If a rewrite produced an affine form of the wrong size
        """
        memo = dict(self._memo)
        num_aux = len(self.aux_variables)
        try:
            result = self._canonicalize(expr)
        except Exception:
            self._memo = memo
            del self.aux_variables[num_aux:]
            raise
        logger.debug(
            "Canonicalized %s: %d constraints, %d auxiliary variables",
            type(expr).__name__,
            len(result[1]),
            len(self.aux_variables) - num_aux,
        )
        return result

    def _canonicalize(self, expr: Expr) -> CanonicalForm:
        key = id(expr)
        if self.config.memoize and key in self._memo:
            return self._memo[key][1]

        if isinstance(expr, Atom) and curvature_of(expr).is_constant():
            # No variables below: evaluate numerically at assembly time.
            self._check_domain(expr)
            result = (aff.deferred(expr), [])
        else:
            fn = _GRAPH_IMPLEMENTATIONS.get(type(expr))
            if fn is None:
                raise NotImplementedError(
                    f"No graph implementation for {type(expr).__name__}"
                )
            child_forms = [self._canonicalize(child) for child in expr.children()]
            self._check_dcp(expr)
            affine, new_constraints = fn(self, expr, [form[0] for form in child_forms])
            for constraint in new_constraints:
                constraint.validate()
            constraints = merge_constraints([form[1] for form in child_forms] + [new_constraints])
            result = (affine, constraints)

        affine = result[0]
        if self.config.check_sizes and affine is not None and affine.size != expr.size:
            raise SizeMismatchError(
                f"Canonical form of {type(expr).__name__} has size {affine.size}, "
                f"expected {expr.size}"
            )
        self._memo[key] = (expr, result)
        return result

    @staticmethod
    def _check_domain(expr: Expr) -> None:
        if isinstance(expr, Sqrt):
            arg = expr.operand
        elif isinstance(expr, Power) and expr.p == 0.5:
            arg = expr.base
        else:
            return
        if not sign_of(arg).is_positive():
            raise DCPViolationError(
                f"{expr!r} is not DCP: square root of an argument with sign {sign_of(arg)}",
                node=expr,
            )

    @staticmethod
    def _check_dcp(expr: Expr) -> None:
        if not curvature_of(expr).is_unknown():
            return
        args = ", ".join(
            f"{type(child).__name__}: {curvature_of(child)}" for child in expr.children()
        )
        if isinstance(expr, Equality):
            reason = "both sides of an equality must be affine"
        elif isinstance(expr, Inequality):
            reason = "lhs <= rhs requires a convex lhs and a concave rhs"
        elif isinstance(expr, SOC):
            reason = "cone head and body must be affine"
        elif isinstance(expr, (Mul, MatMul, Div)):
            reason = "products need a constant side and division a constant divisor"
        elif isinstance(expr, Power):
            reason = f"exponent must be one of 1, 2, 0.5, -1 (got {expr.p})"
        else:
            reason = "argument curvatures break the composition rules"
        raise DCPViolationError(f"{expr!r} is not DCP: {reason} ({args})", node=expr)


def canonicalize(expr: Expr, config: Optional[CanonicalizationConfig] = None) -> CanonicalForm:
    """Canonicalize ``expr`` with a fresh :class:`Canonicalizer`."""
    return Canonicalizer(config).canonicalize(expr)


# ==================== HELPERS ====================


def _ones(rows: int, cols: int = 1) -> AffineExpr:
    return aff.const(np.ones((rows, cols)))


def _column(x: AffineExpr) -> AffineExpr:
    """``x`` vectorized column-major as an ``(numel, 1)`` expression."""
    return x if x.cols == 1 else aff.reshape(x, (x.numel, 1))


def _scale(factor: float, x: AffineExpr) -> AffineExpr:
    return aff.mul_elemwise(aff.const(np.array([[factor]])), x)


def _row_cones(head: AffineExpr, bodies: List[AffineExpr]) -> SOCConstraint:
    """One cone per entry: ``||(bodies[0][i], bodies[1][i], ...)||_2 <= head[i]``."""
    return SOCConstraint(_column(head), aff.hstack([_column(b) for b in bodies]), axis=1)


# ==================== LEAVES ====================


@graph_implementation(Constant)
def _canon_constant(canon, node: Constant, args):
    return aff.const(node.value), []


@graph_implementation(Parameter, CallbackParam)
def _canon_parameter(canon, node: Parameter, args):
    # The value is read at assembly time, never here.
    return aff.param(node), []


@graph_implementation(Variable)
def _canon_variable(canon, node: Variable, args):
    return aff.variable(node.id, node.size), []


# ==================== AFFINE OPERATORS ====================


@graph_implementation(Add)
def _canon_add(canon, node, args):
    return aff.sum_expr(args), []


@graph_implementation(Sub)
def _canon_sub(canon, node, args):
    return aff.sub_expr(args[0], args[1]), []


@graph_implementation(Neg)
def _canon_neg(canon, node, args):
    return aff.neg_expr(args[0]), []


@graph_implementation(Mul)
def _canon_mul(canon, node: Mul, args):
    if curvature_of(node.left).is_constant():
        return aff.mul_elemwise(args[0], args[1]), []
    return aff.mul_elemwise(args[1], args[0]), []


@graph_implementation(Div)
def _canon_div(canon, node, args):
    return aff.div_expr(args[0], args[1]), []


@graph_implementation(MatMul)
def _canon_matmul(canon, node: MatMul, args):
    if curvature_of(node.left).is_constant():
        return aff.mul_expr(args[0], args[1]), []
    return aff.rmul_expr(args[0], args[1]), []


@graph_implementation(Sum)
def _canon_sum(canon, node, args):
    return aff.sum_entries(args[0]), []


@graph_implementation(Index)
def _canon_index(canon, node: Index, args):
    return aff.index(args[0], node.key), []


@graph_implementation(Transpose)
def _canon_transpose(canon, node, args):
    return aff.transpose(args[0]), []


@graph_implementation(Reshape)
def _canon_reshape(canon, node: Reshape, args):
    return aff.reshape(args[0], node.new_size), []


@graph_implementation(Hstack)
def _canon_hstack(canon, node, args):
    return aff.hstack(args), []


@graph_implementation(Vstack)
def _canon_vstack(canon, node, args):
    return aff.vstack(args), []


# ==================== NONLINEAR ATOMS ====================


@graph_implementation(Abs)
def _canon_abs(canon, node, args):
    x = args[0]
    t = canon.new_variable(x.size)
    return t, [NonNegConstraint(aff.sub_expr(t, x)), NonNegConstraint(aff.sum_expr([t, x]))]


@graph_implementation(PositivePart)
def _canon_pos(canon, node, args):
    x = args[0]
    t = canon.new_variable(x.size)
    return t, [NonNegConstraint(aff.sub_expr(t, x)), NonNegConstraint(t)]


def _square(canon, x: AffineExpr) -> Tuple[AffineExpr, List[CanonicalConstraint]]:
    # x^2 <= t  <=>  ||(t - 1, 2x)||_2 <= t + 1
    t = canon.new_variable(x.size)
    ones = _ones(x.numel)
    t_col = _column(t)
    head = aff.sum_expr([t_col, ones])
    bodies = [aff.sub_expr(t_col, ones), _scale(2.0, _column(x))]
    return t, [_row_cones(head, bodies)]


def _sqrt(canon, x: AffineExpr) -> Tuple[AffineExpr, List[CanonicalConstraint]]:
    # t^2 <= x  <=>  ||(x - 1, 2t)||_2 <= x + 1, which also forces x >= 0
    t = canon.new_variable(x.size)
    ones = _ones(x.numel)
    x_col = _column(x)
    head = aff.sum_expr([x_col, ones])
    bodies = [aff.sub_expr(x_col, ones), _scale(2.0, _column(t))]
    return t, [_row_cones(head, bodies)]


def _inv_pos(canon, x: AffineExpr) -> Tuple[AffineExpr, List[CanonicalConstraint]]:
    # x t >= 1, x, t >= 0  <=>  ||(x - t, 2)||_2 <= x + t
    t = canon.new_variable(x.size)
    x_col, t_col = _column(x), _column(t)
    head = aff.sum_expr([x_col, t_col])
    bodies = [aff.sub_expr(x_col, t_col), aff.const(2.0 * np.ones((x.numel, 1)))]
    return t, [_row_cones(head, bodies)]


@graph_implementation(Square)
def _canon_square(canon, node, args):
    return _square(canon, args[0])


@graph_implementation(Sqrt)
def _canon_sqrt(canon, node, args):
    return _sqrt(canon, args[0])


@graph_implementation(InvPos)
def _canon_inv_pos(canon, node, args):
    return _inv_pos(canon, args[0])


@graph_implementation(Power)
def _canon_power(canon, node: Power, args):
    x = args[0]
    p = node.p
    if p == 1:
        return x, []
    if p == 2:
        return _square(canon, x)
    if p == 0.5:
        return _sqrt(canon, x)
    if p == -1:
        return _inv_pos(canon, x)
    raise DCPViolationError(f"{node!r}: unsupported exponent {p}", node=node)


@graph_implementation(Max)
def _canon_max(canon, node, args):
    t = canon.new_variable(node.size)
    return t, [NonNegConstraint(aff.sub_expr(t, x)) for x in args]


@graph_implementation(Min)
def _canon_min(canon, node, args):
    t = canon.new_variable(node.size)
    return t, [NonNegConstraint(aff.sub_expr(x, t)) for x in args]


@graph_implementation(MaxEntries)
def _canon_max_entries(canon, node, args):
    t = canon.new_variable((1, 1))
    return t, [NonNegConstraint(aff.sub_expr(t, args[0]))]


@graph_implementation(MinEntries)
def _canon_min_entries(canon, node, args):
    t = canon.new_variable((1, 1))
    return t, [NonNegConstraint(aff.sub_expr(args[0], t))]


@graph_implementation(Norm)
def _canon_norm(canon, node: Norm, args):
    x = args[0]
    if node.ord == 2:
        t = canon.new_variable((1, 1))
        return t, [SOCConstraint(t, _column(x), axis=0)]
    if node.ord == 1:
        t = canon.new_variable(x.size)
        constraints = [
            NonNegConstraint(aff.sub_expr(t, x)),
            NonNegConstraint(aff.sum_expr([t, x])),
        ]
        return aff.sum_entries(t), constraints
    # infinity norm
    t = canon.new_variable((1, 1))
    return t, [
        NonNegConstraint(aff.sub_expr(t, x)),
        NonNegConstraint(aff.sum_expr([t, x])),
    ]


@graph_implementation(QuadOverLin)
def _canon_quad_over_lin(canon, node, args):
    # ||x||^2 / y <= t  <=>  ||(y - t, 2x)||_2 <= y + t
    x, y = args
    t = canon.new_variable((1, 1))
    head = aff.sum_expr([y, t])
    body = aff.vstack([aff.sub_expr(y, t), _scale(2.0, _column(x))])
    return t, [SOCConstraint(head, body, axis=0)]


# ==================== CONSTRAINTS ====================


@graph_implementation(Equality)
def _canon_equality(canon, node, args):
    return None, [ZeroConstraint(aff.sub_expr(args[0], args[1]))]


@graph_implementation(Inequality)
def _canon_inequality(canon, node, args):
    return None, [NonNegConstraint(aff.sub_expr(args[1], args[0]))]


@graph_implementation(SOC)
def _canon_soc(canon, node: SOC, args):
    return None, [SOCConstraint(args[0], args[1], axis=node.axis)]
