"""Tests for assembling canonical forms into conic data."""

import numpy as np
import pytest

from openconic.assembly import ConicAssembler, collect_parameters
from openconic.config import AssemblyConfig
from openconic.errors import AssemblyError
from openconic.symbolic import affine as aff
from openconic.symbolic.canonicalizer import Canonicalizer, merge_constraints
from openconic.symbolic.cones import (
    CanonicalConstraint,
    NonNegCone,
    SOCone,
    ZeroCone,
)
from openconic.symbolic.expr import (
    SOC,
    Abs,
    CallbackParam,
    Constant,
    Norm,
    Parameter,
    Sum,
    Variable,
)


def assemble(constraints, objective=None, variables=None, config=None):
    """Canonicalize and assemble a problem the way Problem does."""
    canon = Canonicalizer()
    obj = None
    groups = []
    if objective is not None:
        obj, obj_constraints = canon.canonicalize(objective)
        groups.append(obj_constraints)
    for constraint in constraints:
        groups.append(canon.canonicalize(constraint)[1])
    return ConicAssembler(obj, merge_constraints(groups), variables, config).assemble()


# =============================================================================
# Row and column layout
# =============================================================================


def test_cones_follow_declaration_order():
    """An equality followed by a block of two SOC(3) cones."""
    x = Variable(2)
    t = Variable(2)
    X = Variable(2, 2)
    data = assemble([x == 1, SOC(t, X)])

    assert data.cones == [ZeroCone(2), SOCone(3), SOCone(3)]
    assert data.num_rows == 8
    assert data.A.shape == (8, data.num_vars)

    # Rows of cone i are (t_i, X[0, i], X[1, i]).
    A = data.A.toarray()
    t_col, X_col = data.var_index[t.id], data.var_index[X.id]
    assert A[2, t_col] == 1.0
    assert A[3, X_col] == 1.0
    assert A[4, X_col + 1] == 1.0
    assert A[5, t_col + 1] == 1.0
    assert A[6, X_col + 2] == 1.0


def test_columns_follow_variable_ids():
    x = Variable(2)
    y = Variable(3)
    data = assemble([y >= 0, x == 0])
    assert list(data.var_index) == sorted([x.id, y.id])
    assert data.var_index[x.id] == 0
    assert data.var_index[y.id] == 2
    assert data.var_sizes[y.id] == (3, 1)
    assert data.num_vars == 5


def test_objective_constraints_come_first():
    x = Variable(3)
    data = assemble([x <= 1], objective=Norm(x))
    assert data.cones == [SOCone(4), NonNegCone(3)]


def test_extra_variables_get_columns():
    x = Variable(2)
    z = Variable(3)
    data = assemble([x >= 0], variables=[x, z])
    assert data.num_vars == 5
    assert data.var_index[z.id] == 2
    assert data.A[:, 2:].nnz == 0


# =============================================================================
# Numeric values
# =============================================================================


def test_equality_data():
    x = Variable(2)
    data = assemble([x == [1.0, 2.0]])
    np.testing.assert_array_equal(data.A.toarray(), np.eye(2))
    np.testing.assert_array_equal(data.b, [-1.0, -2.0])
    assert data.dims == {"zero": 2, "nonneg": 0, "soc": []}


def test_objective_data():
    x = Variable(3)
    data = assemble([x >= 0], objective=Sum(Constant([1.0, 2.0, 3.0]) * x) + 4)
    np.testing.assert_array_equal(data.c, [1.0, 2.0, 3.0])
    assert data.d == 4.0


def test_affine_rows_reproduce_expression():
    rng = np.random.default_rng(0)
    M = rng.normal(size=(4, 3))
    p = Parameter(4, 1, value=rng.normal(size=4))
    x = Variable(3)
    data = assemble([Constant(M) @ x + p <= 0])

    x_val = rng.normal(size=3)
    expected = -(M @ x_val + p.value.ravel())
    np.testing.assert_allclose(data.A @ x_val + data.b, expected)


def test_parameter_snapshot_is_a_copy():
    p = Parameter(2, 1, value=[1.0, 2.0])
    x = Variable(2)
    data = assemble([x <= p])
    p.value = [5.0, 6.0]
    np.testing.assert_array_equal(data.b, [1.0, 2.0])
    np.testing.assert_array_equal(data.param_values[p.id], [[1.0], [2.0]])


def test_assembly_config_dtype():
    x = Variable(2)
    data = assemble([x <= 1], objective=Sum(x), config=AssemblyConfig(dtype=np.float32))
    assert data.A.dtype == np.float32
    assert data.b.dtype == np.float32
    assert data.c.dtype == np.float32


def test_zero_parameter_entries_are_dropped():
    p = Parameter(2, 1, value=[0.0, 3.0])
    x = Variable(2)
    data = assemble([p * x >= 0])
    assert data.A.nnz == 1


# =============================================================================
# Parameters
# =============================================================================


def test_missing_parameter_value():
    p = Parameter(2, 1, name="limit")
    x = Variable(2)
    with pytest.raises(AssemblyError, match="'limit' has no value"):
        assemble([x <= p])


def test_missing_parameter_inside_deferred_node():
    p = Parameter(2, 1, name="inner")
    x = Variable(2)
    with pytest.raises(AssemblyError, match="'inner' has no value"):
        assemble([x <= Abs(p)])


def test_collect_parameters_includes_deferred_nodes():
    p = Parameter(2)
    q = Parameter(2)
    x = Variable(2)
    _, constraints = Canonicalizer().canonicalize(x + p <= Abs(q))
    found = collect_parameters([c.block() for c in constraints])
    assert [param.id for param in found] == [p.id, q.id]


def test_callback_param_is_read_once_per_assembly():
    calls = []

    def reading():
        calls.append(1)
        return [1.0, 2.0]

    p = CallbackParam(reading, rows=2)
    x = Variable(2)
    canon = Canonicalizer()
    obj, obj_constraints = canon.canonicalize(Sum(p * x))
    constraints = merge_constraints(
        [obj_constraints, canon.canonicalize(x <= p)[1], canon.canonicalize(x >= -p)[1]]
    )
    assert calls == []

    assembler = ConicAssembler(obj, constraints)
    assembler.assemble()
    assert len(calls) == 1
    assembler.assemble()
    assert len(calls) == 2


# =============================================================================
# Errors and helpers
# =============================================================================


def test_objective_must_be_scalar():
    with pytest.raises(AssemblyError, match="scalar"):
        ConicAssembler(aff.variable(0, (2, 1)), [])


class Miscounted(CanonicalConstraint):
    def block(self):
        return aff.variable(0, (3, 1))

    def cones(self):
        return [NonNegCone(2)]


def test_cones_must_cover_rows():
    with pytest.raises(AssemblyError, match="do not cover"):
        ConicAssembler(None, [Miscounted()]).assemble()


def test_scatter():
    x = Variable(2)
    Y = Variable(2, 2)
    data = assemble([x >= 0, Y >= 0])
    values = data.scatter(np.arange(6.0))
    np.testing.assert_array_equal(values[x.id], [[0.0], [1.0]])
    np.testing.assert_array_equal(values[Y.id], [[2.0, 4.0], [3.0, 5.0]])
    with pytest.raises(ValueError, match="length 6"):
        data.scatter(np.zeros(5))


def test_feasibility_problem_without_constraints():
    data = ConicAssembler(None, []).assemble()
    assert data.num_vars == 0
    assert data.num_rows == 0
    assert data.cones == []
