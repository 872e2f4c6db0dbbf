"""Cone descriptors and canonical (affine) constraints.

Canonical constraints are what expression canonicalization emits and what
the assembler consumes. Each one owns one block of rows of the final
constraint matrix and reports the ordered solver cones for that block:

- :class:`ZeroConstraint` - ``expr == 0``, one zero cone
- :class:`NonNegConstraint` - ``expr >= 0``, one non-negative orthant
- :class:`SOCConstraint` - a stack of second-order cones described by an
  :class:`SOCAxis`, one solver cone per stacked cone

Solvers take cone lists positionally. For SOC blocks the head ``t_i`` and
body of cone ``i`` form column ``i`` of the block, so column-major
vectorization lists every cone's rows contiguously, head first.
"""

from dataclasses import dataclass
from typing import List, Tuple

from openconic.errors import AssemblyError

from .affine import AffineExpr, vstack, transpose


# ==================== SOLVER CONE ENTRIES ====================


@dataclass(frozen=True)
class Cone:
    """One entry of the solver's positional cone list.

    Attributes:
        dim: Number of rows the cone spans
    """

    dim: int
    kind = "CONE"

    def __repr__(self):
        return f"{self.kind}({self.dim})"


@dataclass(frozen=True, repr=False)
class ZeroCone(Cone):
    kind = "ZERO"


@dataclass(frozen=True, repr=False)
class NonNegCone(Cone):
    kind = "NONNEG"


@dataclass(frozen=True, repr=False)
class SOCone(Cone):
    """Second-order cone ``{(t, x) : ||x||_2 <= t}`` of dimension ``1 + len(x)``."""

    kind = "SOC"


# ==================== SOC BLOCK DESCRIPTOR ====================


@dataclass(frozen=True)
class SOCAxis:
    """How a matrix-shaped block splits into independent second-order cones.

    The block is the vector ``t`` stacked with the matrix ``X`` along
    ``axis``. With ``axis=0`` every column of ``[t^T; X]`` is one cone; with
    ``axis=1`` every row of ``[t, X]`` is one cone.

    Attributes:
        num_cones: Number of cones stacked along ``axis``
        cone_size: Dimension of each cone (``1 + `` the length of its ``x`` part)
        axis: 0 for column cones, 1 for row cones
    """

    num_cones: int
    cone_size: int
    axis: int = 0

    def __post_init__(self):
        if self.axis not in (0, 1):
            raise ValueError(f"SOC axis must be 0 or 1, got {self.axis}")
        if self.num_cones < 0 or self.cone_size < 1:
            raise ValueError(f"Invalid SOC block {self.num_cones} x {self.cone_size}")

    @property
    def extent(self) -> int:
        return self.num_cones * self.cone_size

    def validate(self, extent: int) -> None:
        """Check that the cones exactly cover a block of ``extent`` scalar rows.

        Raises:
            AssemblyError: If ``num_cones * cone_size != extent``
        """
        if self.extent != extent:
            raise AssemblyError(
                f"SOC block of {self.num_cones} cones of size {self.cone_size} "
                f"does not cover its {extent} rows"
            )

    def cones(self) -> List[SOCone]:
        return [SOCone(self.cone_size) for _ in range(self.num_cones)]


def num_cones(descriptor: SOCAxis) -> int:
    return descriptor.num_cones


def cone_size(descriptor: SOCAxis) -> int:
    return descriptor.cone_size


# ==================== CANONICAL CONSTRAINTS ====================


class CanonicalConstraint:
    """Base class for affine constraints in canonical form.

    Subclasses provide the affine block (:meth:`block`) whose column-major
    vectorization becomes rows of the constraint matrix, and the cones
    covering those rows in order (:meth:`cones`).
    """

    def block(self) -> AffineExpr:
        raise NotImplementedError

    def cones(self) -> List[Cone]:
        raise NotImplementedError

    def validate(self) -> None:
        """Check that :meth:`cones` exactly covers :meth:`block`."""

    @property
    def size(self) -> int:
        """Number of scalar rows this constraint contributes."""
        return self.block().numel

    def structure(self) -> Tuple:
        return (type(self).__name__, tuple(self.cones()), self.block().structure())


class ZeroConstraint(CanonicalConstraint):
    """``expr == 0`` elementwise."""

    def __init__(self, expr: AffineExpr):
        self.expr = expr

    def block(self) -> AffineExpr:
        return self.expr

    def cones(self) -> List[Cone]:
        return [ZeroCone(self.expr.numel)]

    def __repr__(self):
        return f"ZeroConstraint({self.expr.size})"


class NonNegConstraint(CanonicalConstraint):
    """``expr >= 0`` elementwise."""

    def __init__(self, expr: AffineExpr):
        self.expr = expr

    def block(self) -> AffineExpr:
        return self.expr

    def cones(self) -> List[Cone]:
        return [NonNegCone(self.expr.numel)]

    def __repr__(self):
        return f"NonNegConstraint({self.expr.size})"


class SOCConstraint(CanonicalConstraint):
    """A stack of second-order cones ``||X[:, i]||_2 <= t[i]`` (or over rows of X).

    Args:
        t: ``(n, 1)`` affine expression of cone heads
        X: ``(m, n)`` for ``axis=0`` or ``(n, m)`` for ``axis=1``
        axis: 0 when the columns of ``X`` are the cone bodies, 1 for rows

    Raises:
        ValueError: If the sizes of ``t`` and ``X`` do not line up
    """

    def __init__(self, t: AffineExpr, X: AffineExpr, axis: int = 0):
        if t.cols != 1:
            raise ValueError(f"SOC head must be a column, got {t.size}")
        n = X.cols if axis == 0 else X.rows
        if t.rows != n:
            raise ValueError(f"SOC head {t.size} does not match body {X.size} on axis {axis}")
        self.t = t
        self.X = X
        self.axis = axis
        body = X.rows if axis == 0 else X.cols
        self.descriptor = SOCAxis(num_cones=n, cone_size=body + 1, axis=axis)

    def block(self) -> AffineExpr:
        # Column i of the block is cone i: (t_i, body_i).
        body = self.X if self.axis == 0 else transpose(self.X)
        return vstack([transpose(self.t), body])

    def cones(self) -> List[Cone]:
        return self.descriptor.cones()

    def validate(self) -> None:
        self.descriptor.validate(self.size)

    def __repr__(self):
        return (
            f"SOCConstraint(num_cones={self.descriptor.num_cones}, "
            f"cone_size={self.descriptor.cone_size}, axis={self.axis})"
        )
