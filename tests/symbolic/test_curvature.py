"""Tests for the curvature lattice, DCP composition and per-operator rules."""

import numpy as np
import pytest

from openconic.symbolic.curvature import Curvature, Monotonicity, dcp_curvature
from openconic.symbolic.expr import (
    SOC,
    Abs,
    Constant,
    InvPos,
    Max,
    Min,
    MinEntries,
    Norm,
    Parameter,
    PositivePart,
    QuadOverLin,
    Sqrt,
    Square,
    Sum,
    Variable,
    Vstack,
)
from openconic.symbolic.sign import Sign

C = Curvature


def test_queries():
    assert C.CONSTANT.is_affine() and C.CONSTANT.is_convex() and C.CONSTANT.is_concave()
    assert C.AFFINE.is_convex() and C.AFFINE.is_concave() and not C.AFFINE.is_constant()
    assert C.CONVEX.is_convex() and not C.CONVEX.is_concave()
    assert not C.UNKNOWN.is_dcp()


def test_sum_and_negation():
    assert C.CONSTANT + C.CONVEX is C.CONVEX
    assert C.AFFINE + C.AFFINE is C.AFFINE
    assert C.AFFINE + C.CONCAVE is C.CONCAVE
    assert C.CONVEX + C.CONCAVE is C.UNKNOWN
    assert -C.CONVEX is C.CONCAVE
    assert C.CONVEX - C.CONCAVE is C.CONVEX


def test_sign_mul():
    assert C.sign_mul(Sign.ZERO, C.CONVEX) is C.CONSTANT
    assert C.sign_mul(Sign.POSITIVE, C.CONVEX) is C.CONVEX
    assert C.sign_mul(Sign.NEGATIVE, C.CONVEX) is C.CONCAVE
    assert C.sign_mul(Sign.UNKNOWN, C.AFFINE) is C.AFFINE
    assert C.sign_mul(Sign.UNKNOWN, C.CONVEX) is C.UNKNOWN


@pytest.mark.parametrize(
    "mono, func, arg_sign, arg_curv, expected",
    [
        (Monotonicity.INCREASING, C.CONVEX, Sign.UNKNOWN, C.CONSTANT, C.CONSTANT),
        (Monotonicity.NONMONOTONIC, C.CONVEX, Sign.UNKNOWN, C.AFFINE, C.CONVEX),
        (Monotonicity.INCREASING, C.CONVEX, Sign.UNKNOWN, C.CONVEX, C.CONVEX),
        (Monotonicity.INCREASING, C.CONVEX, Sign.UNKNOWN, C.CONCAVE, C.UNKNOWN),
        (Monotonicity.DECREASING, C.CONVEX, Sign.UNKNOWN, C.CONCAVE, C.CONVEX),
        (Monotonicity.INCREASING, C.CONCAVE, Sign.UNKNOWN, C.CONCAVE, C.CONCAVE),
        (Monotonicity.DECREASING, C.CONCAVE, Sign.UNKNOWN, C.CONVEX, C.CONCAVE),
        (Monotonicity.SIGNED, C.CONVEX, Sign.POSITIVE, C.CONVEX, C.CONVEX),
        (Monotonicity.SIGNED, C.CONVEX, Sign.NEGATIVE, C.CONCAVE, C.CONVEX),
        (Monotonicity.SIGNED, C.CONVEX, Sign.UNKNOWN, C.CONVEX, C.UNKNOWN),
        (Monotonicity.NONMONOTONIC, C.CONVEX, Sign.POSITIVE, C.CONVEX, C.UNKNOWN),
    ],
)
def test_dcp_curvature(mono, func, arg_sign, arg_curv, expected):
    assert dcp_curvature(mono, func, arg_sign, arg_curv) is expected


class TestOperatorRules:
    def test_leaves(self):
        assert Constant(1.0).curvature is C.CONSTANT
        assert Parameter(2, 1).curvature is C.CONSTANT
        assert Variable(2).curvature is C.AFFINE
        assert Variable(2).sign is Sign.UNKNOWN

    def test_affine_combinations(self):
        x = Variable(3)
        assert (2 * x + 1).curvature is C.AFFINE
        assert (x - x).curvature is C.AFFINE
        assert Sum(x).curvature is C.AFFINE
        assert x[0:2].curvature is C.AFFINE
        assert (Constant(np.ones((2, 3))) @ x).curvature is C.AFFINE

    def test_product_of_variables_is_not_dcp(self):
        x = Variable(3)
        y = Variable(3)
        assert (x * y).curvature is C.UNKNOWN
        assert not (x / y).is_dcp()

    def test_scaling_convex_by_sign(self):
        x = Variable(3)
        assert (2 * Abs(x)).is_convex()
        assert (-2 * Abs(x)).is_concave()
        assert (Parameter(sign="NEGATIVE") * Abs(x)).is_concave()
        assert (Parameter() * Abs(x)).curvature is C.UNKNOWN
        assert (Abs(x) / 2).is_convex()

    def test_zero_times_variable_stays_affine(self):
        x = Variable()
        assert (Parameter(sign="ZERO") * x).curvature is C.AFFINE

    def test_nonlinear_atoms(self):
        x = Variable(3)
        assert Abs(x).curvature is C.CONVEX
        assert Square(x).curvature is C.CONVEX
        assert Norm(x, 1).curvature is C.CONVEX
        assert Sqrt(x).curvature is C.CONCAVE
        assert InvPos(x).curvature is C.CONVEX
        assert PositivePart(x).curvature is C.CONVEX
        assert Max(x, 0).curvature is C.CONVEX
        assert Min(x, 1).curvature is C.CONCAVE
        assert MinEntries(x).curvature is C.CONCAVE
        assert QuadOverLin(x, Variable()).curvature is C.CONVEX

    def test_compositions(self):
        x = Variable(3)
        assert Square(Abs(x)).curvature is C.CONVEX  # abs is non-negative
        assert Sqrt(Sqrt(x)).curvature is C.CONCAVE
        assert Sqrt(Square(x)).curvature is C.UNKNOWN
        assert InvPos(Sqrt(x)).curvature is C.CONVEX
        assert Norm(Abs(x) - 1).curvature is C.UNKNOWN
        assert Max(Abs(x), Square(x)).curvature is C.CONVEX
        assert Max(Abs(x), Sqrt(x)).curvature is C.UNKNOWN

    def test_powers(self):
        x = Variable()
        assert (x**1).curvature is C.AFFINE
        assert (x**2).curvature is C.CONVEX
        assert (x**0.5).curvature is C.CONCAVE
        assert (x**-1).curvature is C.CONVEX
        assert (x**3).curvature is C.UNKNOWN
        assert (Constant(2.0) ** 3).curvature is C.CONSTANT

    def test_constant_atoms(self):
        p = Parameter(3, 1)
        assert Abs(p).curvature is C.CONSTANT
        assert Sqrt(Square(p)).curvature is C.CONSTANT

    def test_constraints(self):
        x = Variable(3)
        assert (x == 1).is_dcp()
        assert not (Abs(x) == 1).is_dcp()
        assert (Abs(x) <= 1).is_dcp()
        assert not (Abs(x) >= 1).is_dcp()
        assert (Sqrt(x) >= Abs(x)).is_dcp()
        assert SOC(Variable(), x).is_dcp()
        assert not SOC(Variable(), Abs(x)).is_dcp()


class TestSignRules:
    def test_arithmetic(self):
        p = Parameter(sign="POSITIVE")
        n = Parameter(sign="NEGATIVE")
        assert (p + p).sign is Sign.POSITIVE
        assert (p - n).sign is Sign.POSITIVE
        assert (p * n).sign is Sign.NEGATIVE
        assert (-n).sign is Sign.POSITIVE
        assert (p + n).sign is Sign.UNKNOWN

    def test_constant_sign_is_derived_from_value(self):
        assert Constant([1, 2]).sign is Sign.POSITIVE
        assert Constant([[0, 0]]).sign is Sign.ZERO
        assert Constant([-1, 2]).sign is Sign.UNKNOWN

    def test_nonnegative_atoms(self):
        x = Variable(2)
        for atom in (Abs(x), Square(x), Sqrt(x), InvPos(x), Norm(x), QuadOverLin(x, 1)):
            assert atom.sign is Sign.POSITIVE
            assert atom.is_positive()

    def test_positive_part(self):
        assert PositivePart(Variable()).sign is Sign.POSITIVE
        assert PositivePart(Parameter(sign="NEGATIVE")).sign is Sign.ZERO

    def test_max_and_min(self):
        x = Variable()
        assert Max(x, 1).sign is Sign.POSITIVE
        assert Max(x, Parameter(sign="NEGATIVE")).sign is Sign.UNKNOWN
        assert Max(Parameter(sign="NEGATIVE"), 0).sign is Sign.ZERO
        assert Max(Parameter(sign="NEGATIVE"), -1).sign is Sign.NEGATIVE
        assert Min(x, -1).sign is Sign.NEGATIVE
        assert Min(Parameter(sign="POSITIVE"), 0).sign is Sign.ZERO

    def test_stacking_joins_signs(self):
        a = Parameter(2, 1, sign="POSITIVE")
        assert Vstack([a, Constant([0.0])]).sign is Sign.POSITIVE
        assert Vstack([a, Parameter(sign="NEGATIVE")]).sign is Sign.UNKNOWN

    def test_reciprocal_of_constant_keeps_its_sign(self):
        n = Parameter(sign="NEGATIVE", value=-2.0)
        assert InvPos(n).sign is Sign.NEGATIVE
        assert not InvPos(n).is_positive()
        np.testing.assert_allclose(InvPos(n).value, [[-0.5]])
        assert (n**-1).sign is Sign.NEGATIVE
        assert (n**-2).sign is Sign.POSITIVE
        assert InvPos(Parameter()).sign is Sign.UNKNOWN
        assert InvPos(Constant(0.0)).sign is Sign.UNKNOWN
        assert InvPos(Constant([1.0, 2.0])).sign is Sign.POSITIVE

    def test_square_root_of_constant_needs_nonnegative_argument(self):
        assert Sqrt(Parameter(sign="POSITIVE")).sign is Sign.POSITIVE
        assert Sqrt(Parameter()).sign is Sign.UNKNOWN
        assert Sqrt(Parameter(sign="NEGATIVE")).sign is Sign.UNKNOWN
        assert (Parameter() ** 0.5).sign is Sign.UNKNOWN
        assert (Variable() ** 0.5).sign is Sign.POSITIVE

    def test_quad_over_lin_over_constant_denominator(self):
        x = Variable(2)
        assert QuadOverLin(x, Parameter(sign="POSITIVE")).sign is Sign.POSITIVE
        assert QuadOverLin(x, Parameter(sign="NEGATIVE")).sign is Sign.UNKNOWN

    def test_products_with_constant_atoms_use_their_true_sign(self):
        x = Variable()
        n = Parameter(sign="NEGATIVE", value=-2.0)
        assert (InvPos(n) * Square(x)).curvature is C.CONCAVE
        assert (n**-1 * Square(x)).curvature is C.CONCAVE
        assert (InvPos(Parameter()) * Square(x)).curvature is C.UNKNOWN
        assert (Sqrt(Parameter()) * Square(x)).curvature is C.UNKNOWN
