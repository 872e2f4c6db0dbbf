"""Tests for cone descriptors and canonical constraints."""

import numpy as np
import pytest

from openconic.errors import AssemblyError
from openconic.symbolic import affine as aff
from openconic.symbolic.cones import (
    NonNegCone,
    NonNegConstraint,
    SOCAxis,
    SOCConstraint,
    SOCone,
    ZeroCone,
    ZeroConstraint,
    cone_size,
    num_cones,
)


@pytest.mark.parametrize("n, m, axis", [(1, 1, 0), (2, 3, 0), (4, 2, 1), (0, 5, 1)])
def test_cone_accounting(n, m, axis):
    descriptor = SOCAxis(num_cones=n, cone_size=m, axis=axis)
    assert num_cones(descriptor) * cone_size(descriptor) == descriptor.extent
    descriptor.validate(n * m)


def test_validate_rejects_wrong_extent():
    descriptor = SOCAxis(num_cones=2, cone_size=3)
    with pytest.raises(AssemblyError, match="does not cover"):
        descriptor.validate(5)


def test_invalid_descriptor():
    with pytest.raises(ValueError, match="axis"):
        SOCAxis(num_cones=1, cone_size=2, axis=3)
    with pytest.raises(ValueError, match="Invalid SOC block"):
        SOCAxis(num_cones=1, cone_size=0)


def test_cone_repr_and_equality():
    assert repr(SOCone(3)) == "SOC(3)"
    assert repr(ZeroCone(2)) == "ZERO(2)"
    assert repr(NonNegCone(4)) == "NONNEG(4)"
    assert SOCone(3) == SOCone(3)
    assert SOCAxis(2, 3).cones() == [SOCone(3), SOCone(3)]


def test_zero_and_nonneg_constraints():
    x = aff.variable(0, (3, 2))
    eq = ZeroConstraint(x)
    ineq = NonNegConstraint(x)
    assert eq.size == 6
    assert eq.cones() == [ZeroCone(6)]
    assert ineq.cones() == [NonNegCone(6)]


def test_soc_constraint_column_cones():
    t = aff.variable(0, (2, 1))
    X = aff.variable(1, (3, 2))
    constraint = SOCConstraint(t, X, axis=0)
    constraint.validate()
    assert constraint.size == 8
    assert constraint.cones() == [SOCone(4), SOCone(4)]
    assert constraint.block().size == (4, 2)


def test_soc_constraint_row_cones():
    t = aff.variable(0, (2, 1))
    X = aff.variable(1, (2, 3))
    constraint = SOCConstraint(t, X, axis=1)
    constraint.validate()
    assert constraint.cones() == [SOCone(4), SOCone(4)]
    # Rows of X become columns of the block, each preceded by its head.
    t_val = np.array([[1.0], [2.0]])
    X_val = np.arange(6.0).reshape(2, 3)
    coeffs = aff.get_coefficients(constraint.block(), {})
    vec = coeffs[0] @ t_val.ravel() + coeffs[1] @ X_val.ravel(order="F")
    np.testing.assert_allclose(vec[:4], [1.0, 0.0, 1.0, 2.0])
    np.testing.assert_allclose(vec[4:], [2.0, 3.0, 4.0, 5.0])


def test_soc_constraint_size_mismatch():
    with pytest.raises(ValueError, match="does not match"):
        SOCConstraint(aff.variable(0, (3, 1)), aff.variable(1, (2, 2)))
    with pytest.raises(ValueError, match="column"):
        SOCConstraint(aff.variable(0, (1, 2)), aff.variable(1, (2, 2)))


def test_structure_compares_cones_and_shapes():
    a = SOCConstraint(aff.variable(0, (1, 1)), aff.variable(1, (3, 1)))
    b = SOCConstraint(aff.variable(5, (1, 1)), aff.variable(7, (3, 1)))
    assert a.structure() == b.structure()
    assert a.structure() != NonNegConstraint(aff.variable(0, (4, 1))).structure()
