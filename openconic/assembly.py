"""Assembly of canonical forms into one conic problem.

The assembler takes the canonical objective and the ordered list of canonical
constraints of a problem and produces :class:`ConicData` for

    minimize    c^T x + d
    subject to  A x + b ∈ K

Columns of ``A`` follow increasing variable id; each variable occupies a
contiguous range of columns, vectorized column-major. Rows follow constraint
order, and ``cones`` lists the cone of every row block in the same order, so
solvers can consume it positionally.

Parameter values are read once, into a snapshot, at the start of assembly;
changes made afterwards do not affect the result.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from openconic.config import AssemblyConfig
from openconic.errors import AssemblyError
from openconic.symbolic.affine import (
    CONSTANT,
    AffineExpr,
    LinOpKind,
    collect_variables,
    get_coefficients,
)
from openconic.symbolic.cones import CanonicalConstraint, Cone

logger = logging.getLogger(__name__)


@dataclass
class ConicData:
    """Numeric conic problem ``min c^T x + d  s.t.  A x + b ∈ K``.

    Attributes:
        A: Constraint matrix, ``(num_rows, num_vars)``
        b: Constraint offset, ``(num_rows,)``
        c: Objective vector, ``(num_vars,)``
        d: Objective offset
        cones: Cone of each row block, in row order
        var_index: Variable id -> first column of that variable
        var_sizes: Variable id -> ``(rows, cols)``
        param_values: Parameter id -> value snapshot used to build the data
    """

    A: sp.csc_matrix
    b: np.ndarray
    c: np.ndarray
    d: float
    cones: List[Cone]
    var_index: Dict[int, int]
    var_sizes: Dict[int, Tuple[int, int]]
    param_values: Dict[int, np.ndarray] = field(default_factory=dict)

    @property
    def num_vars(self) -> int:
        return self.c.shape[0]

    @property
    def num_rows(self) -> int:
        return self.b.shape[0]

    @property
    def dims(self) -> Dict[str, object]:
        """Cone dimensions by kind: total zero and non-negative rows, and the SOC sizes."""
        return {
            "zero": sum(cone.dim for cone in self.cones if cone.kind == "ZERO"),
            "nonneg": sum(cone.dim for cone in self.cones if cone.kind == "NONNEG"),
            "soc": [cone.dim for cone in self.cones if cone.kind == "SOC"],
        }

    def scatter(self, x) -> Dict[int, np.ndarray]:
        """Split a solution vector into one ``(rows, cols)`` array per variable id.

        Raises:
            ValueError: If ``x`` does not have one entry per column of ``A``
        """
        x = np.asarray(x, dtype=float).ravel()
        if x.shape[0] != self.num_vars:
            raise ValueError(f"Expected a solution of length {self.num_vars}, got {x.shape[0]}")
        values = {}
        for var_id, offset in self.var_index.items():
            rows, cols = self.var_sizes[var_id]
            values[var_id] = x[offset : offset + rows * cols].reshape((rows, cols), order="F")
        return values


def collect_parameters(exprs: Sequence[AffineExpr]) -> list:
    """Distinct parameters referenced by ``exprs``, including inside deferred nodes."""
    found = {}
    stack = list(exprs)
    while stack:
        node = stack.pop()
        if node.kind is LinOpKind.PARAM:
            found.setdefault(node.data.id, node.data)
        elif node.kind is LinOpKind.EVAL:
            for param in node.data.parameters():
                found.setdefault(param.id, param)
        stack.extend(node.args)
    return [found[key] for key in sorted(found)]


class ConicAssembler:
    """Builds :class:`ConicData` from a canonical objective and constraints.

    Args:
        objective: ``(1, 1)`` affine objective, or None for a feasibility problem
        constraints: Canonical constraints in declaration order
        variables: Extra ``Variable`` objects to give columns even if no
            expression references them
        config: Assembly settings

    Example:
        >>> aff, constraints = Canonicalizer().canonicalize(Norm(x) <= 1)
        >>> data = ConicAssembler(None, constraints).assemble()
        >>> data.cones
        [SOC(4), NONNEG(1)]
    """

    def __init__(
        self,
        objective: Optional[AffineExpr],
        constraints: Sequence[CanonicalConstraint],
        variables: Optional[Sequence] = None,
        config: Optional[AssemblyConfig] = None,
    ):
        if objective is not None and objective.size != (1, 1):
            raise AssemblyError(f"Objective must be a scalar, got size {objective.size}")
        self.objective = objective
        self.constraints = list(constraints)
        self.variables = list(variables) if variables is not None else []
        self.config = config if config is not None else AssemblyConfig()

    def _affine_exprs(self) -> List[AffineExpr]:
        exprs = [constraint.block() for constraint in self.constraints]
        if self.objective is not None:
            exprs.insert(0, self.objective)
        return exprs

    def snapshot_parameters(self) -> Dict[int, np.ndarray]:
        """Read every parameter value once.

        Callback parameters invoke their callback here, exactly once per assembly.

        Raises:
            AssemblyError: If a parameter has no value
        """
        snapshot = {}
        for param in collect_parameters(self._affine_exprs()):
            value = param.value
            if value is None:
                raise AssemblyError(f"Parameter {param.name!r} has no value")
            snapshot[param.id] = np.array(value, dtype=float, copy=True)
        return snapshot

    def variable_layout(self) -> Tuple[Dict[int, int], Dict[int, Tuple[int, int]]]:
        """Column offset and size of every variable, ordered by id."""
        found = dict(collect_variables(self._affine_exprs()))
        for var in self.variables:
            found.setdefault(var.id, var.size)
        var_index, var_sizes = {}, {}
        offset = 0
        for var_id in sorted(found):
            rows, cols = found[var_id]
            var_index[var_id] = offset
            var_sizes[var_id] = (rows, cols)
            offset += rows * cols
        return var_index, var_sizes

    def assemble(self) -> ConicData:
        """Build the numeric problem.

        Raises:
            AssemblyError: If a parameter has no value or a constraint's cones do
                not cover its rows
        """
        snapshot = self.snapshot_parameters()
        var_index, var_sizes = self.variable_layout()
        num_vars = sum(rows * cols for rows, cols in var_sizes.values())
        dtype = self.config.dtype

        c = np.zeros(num_vars, dtype=dtype)
        d = 0.0
        if self.objective is not None:
            for key, block in get_coefficients(self.objective, snapshot).items():
                if key == CONSTANT:
                    d += float(block.toarray()[0, 0])
                else:
                    offset = var_index[key]
                    c[offset : offset + block.shape[1]] += block.toarray().ravel()

        rows, cols, vals = [], [], []
        b_blocks = []
        cones: List[Cone] = []
        row_offset = 0
        for constraint in self.constraints:
            constraint.validate()
            block_cones = constraint.cones()
            height = constraint.size
            if sum(cone.dim for cone in block_cones) != height:
                raise AssemblyError(
                    f"Cones {block_cones} do not cover the {height} rows of {constraint!r}"
                )
            coeffs = get_coefficients(constraint.block(), snapshot)
            offset_col = np.zeros(height, dtype=dtype)
            for key, block in coeffs.items():
                if key == CONSTANT:
                    offset_col += block.toarray().ravel()
                    continue
                coo = block.tocoo()
                rows.append(coo.row + row_offset)
                cols.append(coo.col + var_index[key])
                vals.append(coo.data)
            b_blocks.append(offset_col)
            cones.extend(block_cones)
            row_offset += height

        if vals:
            A = sp.csc_matrix(
                (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                shape=(row_offset, num_vars),
                dtype=dtype,
            )
        else:
            A = sp.csc_matrix((row_offset, num_vars), dtype=dtype)
        if self.config.drop_zeros:
            A.eliminate_zeros()
        b = np.concatenate(b_blocks) if b_blocks else np.zeros(0, dtype=dtype)

        data = ConicData(
            A=A,
            b=b,
            c=c,
            d=d,
            cones=cones,
            var_index=var_index,
            var_sizes=var_sizes,
            param_values=snapshot,
        )
        logger.debug(
            "Assembled conic problem: %d rows, %d columns, %d nonzeros, %d cones, %d parameters",
            data.num_rows,
            data.num_vars,
            A.nnz,
            len(cones),
            len(snapshot),
        )
        return data
