"""Per-operator sign and curvature rules.

Every expression type registers one sign rule and one curvature rule. Both
rules read only the annotations of the node's direct children, so the
annotations of a whole tree are computed bottom-up, each node once; results
are cached on the node.

Curvature rules for functions follow the DCP composition rule: the curvature
of ``f(g_1, ..., g_n)`` is the sum over arguments of
:func:`~openconic.symbolic.curvature.dcp_curvature` for the monotonicity of
``f`` in that argument, starting from CONSTANT.

Example:
    >>> x = Variable(3)
    >>> curvature_of(Norm(2 * x - 1))
    <Curvature.CONVEX: 'CONVEX'>
    >>> curvature_of(Sqrt(Square(x)))
    <Curvature.UNKNOWN: 'UNKNOWN'>
"""

from typing import Callable, Dict, Sequence, Type

from openconic.symbolic.curvature import Curvature, Monotonicity, dcp_curvature
from openconic.symbolic.expr import (
    SOC,
    Abs,
    Add,
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
from openconic.symbolic.sign import Sign

INC = Monotonicity.INCREASING
DEC = Monotonicity.DECREASING
SIGNED = Monotonicity.SIGNED

_SIGN_RULES: Dict[Type[Expr], Callable[[Expr], Sign]] = {}
_CURVATURE_RULES: Dict[Type[Expr], Callable[[Expr], Curvature]] = {}


def sign_rule(*expr_classes: Type[Expr]):
    def register(fn: Callable[[Expr], Sign]):
        for cls in expr_classes:
            _SIGN_RULES[cls] = fn
        return fn

    return register


def curvature_rule(*expr_classes: Type[Expr]):
    def register(fn: Callable[[Expr], Curvature]):
        for cls in expr_classes:
            _CURVATURE_RULES[cls] = fn
        return fn

    return register


def sign_of(expr: Expr) -> Sign:
    """Sign of ``expr``, computed from its children's signs and cached on the node."""
    cached = expr.__dict__.get("_dcp_sign")
    if cached is not None:
        return cached
    fn = _SIGN_RULES.get(type(expr))
    if fn is None:
        raise NotImplementedError(f"No sign rule for {type(expr).__name__}")
    result = fn(expr)
    expr._dcp_sign = result
    return result


def curvature_of(expr: Expr) -> Curvature:
    """Curvature of ``expr``, computed from its children's annotations and cached on the node."""
    cached = expr.__dict__.get("_dcp_curvature")
    if cached is not None:
        return cached
    fn = _CURVATURE_RULES.get(type(expr))
    if fn is None:
        raise NotImplementedError(f"No curvature rule for {type(expr).__name__}")
    result = fn(expr)
    expr._dcp_curvature = result
    return result


def compose(
    func_curvature: Curvature, args: Sequence[Expr], monotonicities: Sequence[Monotonicity]
) -> Curvature:
    """Curvature of a function of ``args`` under the DCP composition rule."""
    result = Curvature.CONSTANT
    for arg, monotonicity in zip(args, monotonicities):
        result = result + dcp_curvature(
            monotonicity, func_curvature, sign_of(arg), curvature_of(arg)
        )
    return result


def product_curvature(left: Expr, right: Expr) -> Curvature:
    """Curvature of a product where one side must be constant.

    The constant side's sign scales the other side's curvature. A product
    with a non-constant side stays at least AFFINE even when the constant is
    ZERO, since it still references variables.
    """
    lcurv, rcurv = curvature_of(left), curvature_of(right)
    if lcurv.is_constant() and rcurv.is_constant():
        return Curvature.CONSTANT
    if lcurv.is_constant():
        result = Curvature.sign_mul(sign_of(left), rcurv)
    elif rcurv.is_constant():
        result = Curvature.sign_mul(sign_of(right), lcurv)
    else:
        return Curvature.UNKNOWN
    return Curvature.AFFINE if result.is_constant() else result


# ==================== LEAVES ====================


@sign_rule(Constant)
def _sign_constant(node: Constant):
    return node._sign


@sign_rule(Parameter, CallbackParam)
def _sign_parameter(node: Parameter):
    return node.sign_str


@sign_rule(Variable)
def _sign_variable(node: Variable):
    return Sign.UNKNOWN


@curvature_rule(Constant, Parameter, CallbackParam)
def _curv_constant(node):
    return Curvature.CONSTANT


@curvature_rule(Variable)
def _curv_variable(node):
    return Curvature.AFFINE


# ==================== AFFINE OPERATORS ====================


@sign_rule(Add)
def _sign_add(node: Add):
    result = Sign.ZERO
    for term in node.terms:
        result = result + sign_of(term)
    return result


@sign_rule(Sub)
def _sign_sub(node: Sub):
    return sign_of(node.left) - sign_of(node.right)


@sign_rule(Neg)
def _sign_neg(node: Neg):
    return -sign_of(node.operand)


@sign_rule(Mul, Div, MatMul)
def _sign_product(node):
    # A matrix product sums products of equal sign, so the scalar rule holds.
    return sign_of(node.left) * sign_of(node.right)


@sign_rule(Sum, Index, Transpose, Reshape)
def _sign_passthrough(node):
    return sign_of(node.children()[0])


@sign_rule(Hstack, Vstack)
def _sign_stack(node):
    return Sign.join(sign_of(arr) for arr in node.arrays)


@curvature_rule(Add)
def _curv_add(node: Add):
    return compose(Curvature.AFFINE, node.terms, [INC] * len(node.terms))


@curvature_rule(Sub)
def _curv_sub(node: Sub):
    return compose(Curvature.AFFINE, [node.left, node.right], [INC, DEC])


@curvature_rule(Neg)
def _curv_neg(node: Neg):
    return compose(Curvature.AFFINE, [node.operand], [DEC])


@curvature_rule(Mul, MatMul)
def _curv_mul(node):
    return product_curvature(node.left, node.right)


@curvature_rule(Div)
def _curv_div(node: Div):
    # x / c has the curvature of x scaled by the sign of c; a variable divisor is not DCP.
    if not curvature_of(node.right).is_constant():
        return Curvature.UNKNOWN
    return product_curvature(node.left, node.right)


@curvature_rule(Sum, Index, Transpose, Reshape, Hstack, Vstack)
def _curv_linear(node):
    args = node.children()
    return compose(Curvature.AFFINE, args, [INC] * len(args))


# ==================== NONLINEAR ATOMS ====================


@sign_rule(Abs, Square, Norm)
def _sign_nonneg(node):
    return Sign.POSITIVE


def _root_sign(arg: Expr) -> Sign:
    """Sign of a square root; over a variable the cone form enforces the domain."""
    if not curvature_of(arg).is_constant() or sign_of(arg).is_positive():
        return Sign.POSITIVE
    return Sign.UNKNOWN


def _reciprocal_sign(arg: Expr, even: bool = False) -> Sign:
    """Sign of ``1 / arg**k``; constant arguments are evaluated as they are."""
    if not curvature_of(arg).is_constant():
        return Sign.POSITIVE
    sign = sign_of(arg)
    if sign.is_zero():
        return Sign.UNKNOWN
    if even:
        return Sign.POSITIVE
    return sign


@sign_rule(Sqrt)
def _sign_sqrt(node: Sqrt):
    return _root_sign(node.operand)


@sign_rule(InvPos)
def _sign_inv_pos(node: InvPos):
    return _reciprocal_sign(node.x)


@sign_rule(QuadOverLin)
def _sign_quad_over_lin(node: QuadOverLin):
    if curvature_of(node.y).is_constant() and not sign_of(node.y).is_positive():
        return Sign.UNKNOWN
    return Sign.POSITIVE


@sign_rule(PositivePart)
def _sign_pos(node: PositivePart):
    return Sign.ZERO if sign_of(node.x).is_negative() else Sign.POSITIVE


@sign_rule(Max)
def _sign_max(node: Max):
    signs = [sign_of(op) for op in node.operands]
    if any(s is Sign.POSITIVE for s in signs):
        return Sign.POSITIVE
    if any(s.is_zero() for s in signs):
        return Sign.ZERO if all(s.is_negative() for s in signs) else Sign.POSITIVE
    if all(s is Sign.NEGATIVE for s in signs):
        return Sign.NEGATIVE
    return Sign.UNKNOWN


@sign_rule(Min)
def _sign_min(node: Min):
    signs = [sign_of(op) for op in node.operands]
    if any(s is Sign.NEGATIVE for s in signs):
        return Sign.NEGATIVE
    if any(s.is_zero() for s in signs):
        return Sign.ZERO if all(s.is_positive() for s in signs) else Sign.NEGATIVE
    if all(s is Sign.POSITIVE for s in signs):
        return Sign.POSITIVE
    return Sign.UNKNOWN


@sign_rule(MaxEntries, MinEntries)
def _sign_entries(node):
    return sign_of(node.x)


@sign_rule(Power)
def _sign_power(node: Power):
    p = node.p
    if p is None:
        return Sign.UNKNOWN
    even = float(p).is_integer() and int(p) % 2 == 0
    if p == 1:
        return sign_of(node.base)
    if p == 0.5:
        return _root_sign(node.base)
    if p < 0:
        return _reciprocal_sign(node.base, even=even)
    if even:
        return Sign.POSITIVE
    return Sign.UNKNOWN


@curvature_rule(Abs, Square)
def _curv_signed_convex(node):
    return compose(Curvature.CONVEX, [node.x], [SIGNED])


@curvature_rule(Norm)
def _curv_norm(node: Norm):
    return compose(Curvature.CONVEX, [node.operand], [SIGNED])


@curvature_rule(Sqrt)
def _curv_sqrt(node: Sqrt):
    return compose(Curvature.CONCAVE, [node.operand], [INC])


@curvature_rule(InvPos)
def _curv_inv_pos(node: InvPos):
    return compose(Curvature.CONVEX, [node.x], [DEC])


@curvature_rule(PositivePart, MaxEntries)
def _curv_increasing_convex(node):
    return compose(Curvature.CONVEX, [node.x], [INC])


@curvature_rule(MinEntries)
def _curv_min_entries(node: MinEntries):
    return compose(Curvature.CONCAVE, [node.x], [INC])


@curvature_rule(Max)
def _curv_max(node: Max):
    return compose(Curvature.CONVEX, node.operands, [INC] * len(node.operands))


@curvature_rule(Min)
def _curv_min(node: Min):
    return compose(Curvature.CONCAVE, node.operands, [INC] * len(node.operands))


@curvature_rule(QuadOverLin)
def _curv_quad_over_lin(node: QuadOverLin):
    return compose(Curvature.CONVEX, [node.x, node.y], [SIGNED, DEC])


# Supported exponents: (function curvature, monotonicity)
_POWER_RULES = {
    1.0: (Curvature.AFFINE, INC),
    2.0: (Curvature.CONVEX, SIGNED),
    0.5: (Curvature.CONCAVE, INC),
    -1.0: (Curvature.CONVEX, DEC),
}


@curvature_rule(Power)
def _curv_power(node: Power):
    if curvature_of(node.base).is_constant() and curvature_of(node.exponent).is_constant():
        return Curvature.CONSTANT
    rule = _POWER_RULES.get(node.p)
    if rule is None:
        return Curvature.UNKNOWN
    func_curvature, monotonicity = rule
    return compose(func_curvature, [node.base], [monotonicity])


# ==================== CONSTRAINTS ====================
# A constraint has no value of its own; its curvature is AFFINE when it is
# DCP and UNKNOWN when it is not, so ``is_dcp()`` works uniformly.


@sign_rule(Equality, Inequality, SOC)
def _sign_constraint(node):
    return Sign.UNKNOWN


@curvature_rule(Equality)
def _curv_equality(node: Equality):
    ok = curvature_of(node.lhs).is_affine() and curvature_of(node.rhs).is_affine()
    return Curvature.AFFINE if ok else Curvature.UNKNOWN


@curvature_rule(Inequality)
def _curv_inequality(node: Inequality):
    ok = curvature_of(node.lhs).is_convex() and curvature_of(node.rhs).is_concave()
    return Curvature.AFFINE if ok else Curvature.UNKNOWN


@curvature_rule(SOC)
def _curv_soc(node: SOC):
    ok = curvature_of(node.t).is_affine() and curvature_of(node.X).is_affine()
    return Curvature.AFFINE if ok else Curvature.UNKNOWN
