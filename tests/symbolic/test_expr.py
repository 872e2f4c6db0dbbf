"""Tests for expression construction, sizes, traversal and numeric values.

This module covers the operator overloads on Expr and the size rules of every
node type:
- to_expr() conversion and operator overloading
- size checking and scalar broadcasting
- indexing, reshaping and stacking
- traverse(), pretty() and variables()/parameters()/constants()
- numeric evaluation through ``.value``
"""

import numpy as np
import pytest

from openconic.symbolic.expr import (
    SOC,
    Abs,
    Add,
    CallbackParam,
    Constant,
    Div,
    Equality,
    Hstack,
    Index,
    Inequality,
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
    Sub,
    Sum,
    Transpose,
    Variable,
    Vstack,
    norm1,
    norm_inf,
    sum_squares,
    to_expr,
    traverse,
)

# =============================================================================
# to_expr() and operators
# =============================================================================


def test_to_expr_wraps_numbers_and_arrays():
    c1 = to_expr(5)
    assert isinstance(c1, Constant)
    assert c1.size == (1, 1)

    c2 = to_expr([1, 2, 3])
    assert isinstance(c2, Constant)
    assert c2.size == (3, 1)

    x = Variable(2)
    assert to_expr(x) is x


def test_operators_build_nodes():
    x = Variable(3)
    assert isinstance(x + 1, Add)
    assert isinstance(1 + x, Add)
    assert isinstance(x - 1, Sub)
    assert isinstance(x * 2, Mul)
    assert isinstance(2 * x, Mul)
    assert isinstance(x / 2, Div)
    assert isinstance(-x, Neg)
    assert isinstance(x**2, Power)
    assert isinstance(x[0], Index)
    assert isinstance(x.T, Transpose)
    assert isinstance(Constant(np.ones((2, 3))) @ x, MatMul)


def test_reflected_subtraction_keeps_order():
    x = Variable()
    expr = 5 - x
    assert isinstance(expr, Sub)
    assert isinstance(expr.left, Constant)
    assert expr.right is x


def test_comparisons_build_constraints():
    x = Variable(3)
    eq = x == 1
    assert isinstance(eq, Equality)
    assert eq.lhs is x

    le = x <= 1
    assert isinstance(le, Inequality)
    assert le.lhs is x

    ge = x >= 1
    assert isinstance(ge, Inequality)
    assert ge.rhs is x


def test_expressions_are_not_hashable():
    with pytest.raises(TypeError):
        hash(Variable())


def test_constraints_can_be_listed_and_searched():
    x = Variable()
    c1, c2 = x <= 1, x >= 0
    constraints = [c1, c2]
    assert any(c is c2 for c in constraints)


# =============================================================================
# Sizes
# =============================================================================


class TestSizes:
    def test_elementwise_broadcasting(self):
        x = Variable(3, 2)
        assert (x + 1).size == (3, 2)
        assert (2 * x).size == (3, 2)
        assert (x - Parameter(3, 2)).size == (3, 2)
        assert Add(x, 1, x).size == (3, 2)

    def test_elementwise_mismatch(self):
        with pytest.raises(ValueError, match="not broadcastable"):
            (Variable(3) + Variable(2)).size  # noqa: B018

    def test_matmul(self):
        A = Constant(np.ones((2, 3)))
        assert (A @ Variable(3)).size == (2, 1)
        assert (Variable(4, 2) @ Constant(np.ones((2, 5)))).size == (4, 5)
        with pytest.raises(ValueError, match="MatMul incompatible"):
            (Variable(2) @ Variable(3)).size  # noqa: B018

    def test_reductions(self):
        X = Variable(3, 4)
        assert Sum(X).size == (1, 1)
        assert Norm(X).size == (1, 1)
        assert MaxEntries(X).size == (1, 1)
        assert MinEntries(X).size == (1, 1)
        assert sum_squares(X).size == (1, 1)

    def test_elementwise_atoms_keep_size(self):
        X = Variable(3, 4)
        for atom in (Abs(X), Sqrt(X), PositivePart(X), X**2, Max(X, 0), Min(X, 1)):
            assert atom.size == (3, 4)

    def test_transpose_and_reshape(self):
        X = Variable(3, 4)
        assert X.T.size == (4, 3)
        assert Reshape(X, 6, 2).size == (6, 2)
        assert Reshape(X, 12).size == (12, 1)
        with pytest.raises(ValueError, match="Cannot reshape"):
            Reshape(X, 5).size  # noqa: B018

    def test_stacking(self):
        assert Hstack([Variable(3, 4), Variable(3, 2)]).size == (3, 6)
        assert Vstack([Variable(3), Variable(2)]).size == (5, 1)
        with pytest.raises(ValueError, match="rows"):
            Hstack([Variable(3), Variable(2)]).size  # noqa: B018
        with pytest.raises(ValueError, match="columns"):
            Vstack([Variable(3, 2), Variable(3)]).size  # noqa: B018

    def test_power_exponent_must_be_scalar(self):
        with pytest.raises(ValueError, match="exponent must be a scalar"):
            Power(Variable(2), [1, 2]).size  # noqa: B018

    def test_quad_over_lin_denominator_must_be_scalar(self):
        with pytest.raises(ValueError, match="denominator"):
            QuadOverLin(Variable(3), Variable(2)).size  # noqa: B018

    def test_max_min_need_two_operands(self):
        with pytest.raises(ValueError, match="two or more"):
            Max(Variable(2))
        with pytest.raises(ValueError, match="two or more"):
            Min(Variable(2))
        with pytest.raises(ValueError, match="two or more"):
            Add(Variable(2))

    def test_norm_orders(self):
        x = Variable(3)
        assert Norm(x).ord == 2
        assert Norm(x, "fro").ord == 2
        assert Norm(x, "inf").ord == np.inf
        assert norm1(x).ord == 1
        assert norm_inf(x).ord == np.inf
        with pytest.raises(ValueError, match="Unsupported norm order"):
            Norm(x, 3)


class TestIndexing:
    def test_vector_indexing(self):
        x = Variable(5)
        assert x[0:2].size == (2, 1)
        assert x[1].size == (1, 1)
        assert x[-1].size == (1, 1)
        assert x[[0, 2, 4]].size == (3, 1)

    def test_matrix_indexing(self):
        X = Variable(3, 4)
        assert X[1, :].size == (1, 4)
        assert X[:, 2].size == (3, 1)
        assert X[0:2, 1:3].size == (2, 2)
        assert X[[0, 2], [1, 3]].size == (2, 2)

    def test_out_of_range(self):
        x = Variable(3)
        with pytest.raises(ValueError):
            x[5].size  # noqa: B018
        with pytest.raises(ValueError, match="selects no entries"):
            x[3:3].size  # noqa: B018

    def test_boolean_mask(self):
        x = Variable(3)
        x.value = [10.0, 20.0, 30.0]
        mask = np.array([True, False, True])
        assert x[mask].size == (2, 1)
        np.testing.assert_array_equal(x[mask].value, [[10.0], [30.0]])

        X = Variable(2, 3)
        assert X[:, mask].size == (2, 2)
        assert X[np.array([False, True]), mask].size == (1, 2)

    def test_bad_masks_and_keys(self):
        x = Variable(3)
        with pytest.raises(ValueError, match="Bad index"):
            x[np.array([True, False])].size  # noqa: B018
        with pytest.raises(ValueError, match="Bad index"):
            x[[0.5, 1.5]].size  # noqa: B018
        with pytest.raises(ValueError, match="Bad index"):
            x[True].size  # noqa: B018


class TestSOC:
    def test_column_cones(self):
        cone = SOC(Variable(2), Variable(3, 2))
        assert cone.size == (3, 2)
        assert cone.num_cones == 2
        assert cone.cone_size == 4

    def test_row_cones(self):
        cone = SOC(Variable(2), Variable(2, 3), axis=1)
        assert cone.num_cones == 2
        assert cone.cone_size == 4

    def test_scalar_head(self):
        cone = SOC(Variable(), Variable(3))
        assert cone.num_cones == 1
        assert cone.cone_size == 4

    def test_invalid(self):
        with pytest.raises(ValueError, match="axis"):
            SOC(Variable(), Variable(3), axis=2)
        with pytest.raises(ValueError, match="does not match"):
            SOC(Variable(3), Variable(3, 2)).size  # noqa: B018


# =============================================================================
# Traversal and inspection
# =============================================================================


def test_traverse_visits_every_node_depth_first():
    x = Variable(2)
    expr = Abs(x + 1)
    visited = []
    traverse(expr, lambda node: visited.append(type(node).__name__))
    assert visited == ["Abs", "Add", "Variable", "Constant"]


def test_pretty_print_tree_structure():
    a, b, c = Constant(1), Constant(2), Constant(3)
    tree = -((a + b) * c)
    lines = tree.pretty().splitlines()
    assert lines[0] == "Neg"
    assert lines[1] == "  Mul"
    assert lines[2] == "    Add"
    assert lines[3] == "      Constant"


def test_variables_are_distinct_in_first_appearance_order():
    x = Variable(2)
    y = Variable(2)
    expr = x + y + x
    assert [v.id for v in expr.variables()] == [x.id, y.id]


def test_parameters_include_callback_params():
    p = Parameter(2)
    cb = CallbackParam(lambda: [1.0, 1.0], rows=2)
    expr = p + cb + Variable(2)
    assert [q.id for q in expr.parameters()] == [p.id, cb.id]


def test_constants_are_distinct_in_first_appearance_order():
    c = Constant([1.0, 2.0])
    x = Variable(2)
    expr = c * x + c + 3
    constants = expr.constants()
    assert len(constants) == 2
    assert constants[0] is c
    np.testing.assert_array_equal(constants[1].value, [[3.0]])
    assert x.constants() == []


# =============================================================================
# Values
# =============================================================================


class TestValues:
    def test_affine_value(self):
        x = Variable(3)
        x.value = [1, 2, 3]
        np.testing.assert_allclose((2 * x + 1).value, [[3], [5], [7]])
        np.testing.assert_allclose((x / 2).value, [[0.5], [1.0], [1.5]])
        np.testing.assert_allclose(Sum(x).value, [[6.0]])
        np.testing.assert_allclose(x[0:2].value, [[1], [2]])

    def test_unset_leaf_gives_none(self):
        x = Variable(3)
        assert (x + 1).value is None
        assert Norm(x).value is None

    def test_parameter_value(self):
        p = Parameter(2, 1, value=[3, 4])
        assert Norm(p).value[0, 0] == pytest.approx(5.0)
        assert norm1(p).value[0, 0] == pytest.approx(7.0)
        assert norm_inf(p).value[0, 0] == pytest.approx(4.0)

    def test_nonlinear_values(self):
        x = Variable(3)
        x.value = [-1.0, 4.0, 9.0]
        np.testing.assert_allclose(Abs(x).value, [[1], [4], [9]])
        np.testing.assert_allclose((x**2).value, [[1], [16], [81]])
        np.testing.assert_allclose(PositivePart(x).value, [[0], [4], [9]])
        np.testing.assert_allclose(Max(x, 2).value, [[2], [4], [9]])
        np.testing.assert_allclose(Min(x, 2).value, [[-1], [2], [2]])
        assert MaxEntries(x).value[0, 0] == 9.0
        assert MinEntries(x).value[0, 0] == -1.0
        assert QuadOverLin(x, 2).value[0, 0] == pytest.approx(49.0)
        np.testing.assert_allclose(Sqrt(x[1:3]).value, [[2], [3]])

    def test_structural_values(self):
        X = Variable(2, 3)
        X.value = np.arange(6.0).reshape(2, 3)
        np.testing.assert_array_equal(X.T.value, X.value.T)
        np.testing.assert_array_equal(
            Reshape(X, 3, 2).value, X.value.reshape((3, 2), order="F")
        )
        np.testing.assert_array_equal(Hstack([X, X]).value, np.hstack([X.value, X.value]))
        np.testing.assert_array_equal(Vstack([X, X]).value, np.vstack([X.value, X.value]))
        A = np.ones((4, 2))
        np.testing.assert_array_equal((Constant(A) @ X).value, A @ X.value)

    def test_constraints_have_no_value(self):
        x = Variable()
        x.value = 1.0
        with pytest.raises(NotImplementedError):
            (x <= 2).value  # noqa: B018
