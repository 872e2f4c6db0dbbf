"""Optimization problems.

A :class:`Problem` pairs an objective (:class:`Minimize` or :class:`Maximize`)
with a list of constraints and drives them through

    UNBUILT -> CANONICALIZED -> ASSEMBLED -> SOLVED

Canonicalization runs once per problem. Assembly reads parameter values, so it
is redone whenever a parameter has changed since the last assembly; the
canonical structure is reused as is.

Example:
    Parametrized least squares with a norm bound::

        import numpy as np
        import openconic as oc

        A = np.random.randn(10, 3)
        b = oc.Parameter(10, 1, name="b", value=np.random.randn(10))
        x = oc.Variable(3, name="x")

        problem = oc.Problem(oc.Minimize(oc.Norm(A @ x - b)), [oc.Norm(x, "inf") <= 1])
        problem.solve()

        b.value = np.random.randn(10)   # re-assembles, does not re-canonicalize
        problem.solve()
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from openconic import io
from openconic.assembly import ConicAssembler, ConicData
from openconic.config import Config
from openconic.errors import DCPViolationError, SolverError
from openconic.symbolic.affine import AffineExpr
from openconic.symbolic.canonicalizer import Canonicalizer, merge_constraints
from openconic.symbolic.cones import CanonicalConstraint
from openconic.symbolic.dcp import curvature_of
from openconic.symbolic.expr import SOC, Constraint, Expr, Neg, Parameter, Variable, to_expr

logger = logging.getLogger(__name__)


class Objective:
    """Scalar objective of a problem."""

    sense = None

    def __init__(self, expr):
        self.expr = to_expr(expr)
        if self.expr.size != (1, 1):
            raise ValueError(f"Objective must be a scalar, got size {self.expr.size}")

    def canonical_expr(self) -> Expr:
        raise NotImplementedError

    def is_dcp(self) -> bool:
        raise NotImplementedError


class Minimize(Objective):
    """Objective ``minimize expr`` for a convex scalar ``expr``."""

    sense = "minimize"

    def canonical_expr(self) -> Expr:
        """The expression that is minimized in conic form."""
        return self.expr

    def is_dcp(self) -> bool:
        return self.expr.is_convex()

    def __repr__(self):
        return f"Minimize({self.expr!r})"


class Maximize(Objective):
    """Objective ``maximize expr`` for a concave scalar ``expr``.

    Solved as ``minimize -expr``; the reported value has its sign flipped back.
    """

    sense = "maximize"

    def canonical_expr(self) -> Expr:
        return Neg(self.expr)

    def is_dcp(self) -> bool:
        return self.expr.is_concave()

    def __repr__(self):
        return f"Maximize({self.expr!r})"


class ProblemStatus(str, Enum):
    UNBUILT = "UNBUILT"
    CANONICALIZED = "CANONICALIZED"
    ASSEMBLED = "ASSEMBLED"
    SOLVED = "SOLVED"


@dataclass
class CanonicalProblem:
    """Canonical form of a whole problem.

    Attributes:
        objective: ``(1, 1)`` affine objective (already negated for Maximize)
        constraints: Canonical constraints in row order
        aux_variables: Auxiliary variables introduced by canonicalization
    """

    objective: AffineExpr
    constraints: List[CanonicalConstraint]
    aux_variables: List[Variable]


def _constant_status(data: ConicData, tol: float = 1e-9) -> str:
    """Status of a problem without variables: feasible iff ``b`` lies in the cones."""
    row = 0
    for cone in data.cones:
        block = data.b[row : row + cone.dim]
        if cone.kind == "ZERO":
            ok = np.all(np.abs(block) <= tol)
        elif cone.kind == "NONNEG":
            ok = np.all(block >= -tol)
        else:
            ok = np.linalg.norm(block[1:]) <= block[0] + tol
        if not ok:
            return "infeasible"
        row += cone.dim
    return "optimal"


class Problem:
    """A convex optimization problem in DCP form.

    Args:
        objective: :class:`Minimize` or :class:`Maximize`
        constraints: Constraint expressions (``==``, ``<=``, ``>=`` or :class:`SOC`)
        config: Settings for canonicalization, assembly, the solver and output

    Raises:
        TypeError: If the objective or a constraint has the wrong type
    """

    def __init__(
        self,
        objective: Objective,
        constraints: Optional[Sequence[Expr]] = None,
        config: Optional[Config] = None,
    ):
        if not isinstance(objective, Objective):
            raise TypeError("Problem objective must be Minimize(...) or Maximize(...)")
        constraints = list(constraints) if constraints is not None else []
        for i, constraint in enumerate(constraints):
            if not isinstance(constraint, (Constraint, SOC)):
                raise TypeError(
                    f"Constraint {i} is a {type(constraint).__name__}, not a constraint; "
                    "build constraints with ==, <=, >= or SOC(...)"
                )
        self.objective = objective
        self.constraints = constraints
        self.config = config if config is not None else Config()

        self._canonical: Optional[CanonicalProblem] = None
        self._data: Optional[ConicData] = None
        self._data_versions: Optional[Tuple] = None
        self._status = ProblemStatus.UNBUILT
        self._value: Optional[float] = None
        self.solver_status: Optional[str] = None

        self.timing_canonicalize = None
        self.timing_assemble = None
        self.timing_solve = None

    # ==================== INSPECTION ====================

    def _exprs(self) -> List[Expr]:
        return [self.objective.expr] + self.constraints

    def variables(self) -> List[Variable]:
        """Distinct user variables in first-appearance order (objective first)."""
        found = {}
        for expr in self._exprs():
            for var in expr.variables():
                found.setdefault(var.id, var)
        return list(found.values())

    def parameters(self) -> List[Parameter]:
        """Distinct parameters in first-appearance order (objective first)."""
        found = {}
        for expr in self._exprs():
            for param in expr.parameters():
                found.setdefault(param.id, param)
        return list(found.values())

    def is_dcp(self) -> bool:
        """Does the whole problem follow the DCP rules?"""
        return self.objective.is_dcp() and all(c.is_dcp() for c in self.constraints)

    def _param_versions(self) -> Tuple:
        return tuple((p.id, p.version) for p in self.parameters())

    def _is_stale(self) -> bool:
        """Have parameter values changed since the last assembly?"""
        if self._data is None:
            return True
        versions = self._param_versions()
        # Callback parameters have no version and are always re-read.
        return versions != self._data_versions or any(v is None for _, v in versions)

    @property
    def status(self) -> ProblemStatus:
        if self._status in (ProblemStatus.ASSEMBLED, ProblemStatus.SOLVED) and self._is_stale():
            return ProblemStatus.CANONICALIZED
        return self._status

    @property
    def value(self) -> Optional[float]:
        """Optimal objective value of the last solve (±inf for infeasible/unbounded)."""
        return self._value

    # ==================== PIPELINE ====================

    def canonicalize(self) -> CanonicalProblem:
        """Canonicalize the objective and constraints (once per problem).

        Raises:
            DCPViolationError: If the problem is not DCP; the error's ``node`` is
                the offending expression
        """
        if self._canonical is not None:
            return self._canonical

        t_0 = time.time()
        canon = Canonicalizer(self.config.canon)
        objective_expr = self.objective.canonical_expr()
        objective, objective_constraints = canon.canonicalize(objective_expr)
        if not curvature_of(objective_expr).is_convex():
            wanted = "convex" if self.objective.sense == "minimize" else "concave"
            raise DCPViolationError(
                f"Cannot {self.objective.sense} {self.objective.expr!r}: objective must be "
                f"{wanted}, got {curvature_of(self.objective.expr)}",
                node=self.objective.expr,
            )
        groups = [objective_constraints]
        for constraint in self.constraints:
            groups.append(canon.canonicalize(constraint)[1])

        self._canonical = CanonicalProblem(
            objective=objective,
            constraints=merge_constraints(groups),
            aux_variables=list(canon.aux_variables),
        )
        self._status = ProblemStatus.CANONICALIZED
        self.timing_canonicalize = time.time() - t_0
        logger.debug(
            "Canonicalized problem: %d canonical constraints, %d auxiliary variables",
            len(self._canonical.constraints),
            len(self._canonical.aux_variables),
        )
        return self._canonical

    def get_problem_data(self) -> ConicData:
        """Return the assembled conic data for the current parameter values.

        Assembly is redone only when a parameter changed since the last call.

        Raises:
            AssemblyError: If a parameter has no value
        """
        canonical = self.canonicalize()
        if not self._is_stale():
            return self._data

        if self.config.dev.profiling:
            import cProfile

            pr = cProfile.Profile()
            pr.enable()

        t_0 = time.time()
        versions = self._param_versions()
        assembler = ConicAssembler(
            canonical.objective,
            canonical.constraints,
            variables=self.variables(),
            config=self.config.asm,
        )
        data = assembler.assemble()
        self.timing_assemble = time.time() - t_0

        if self.config.dev.profiling:
            pr.disable()
            # Save results so it can be visualized with snakeviz
            pr.dump_stats("profiling_assemble.prof")

        self._data = data
        self._data_versions = versions
        self._status = ProblemStatus.ASSEMBLED
        if self.config.dev.printing:
            io.problem_summary(data, self.timing_canonicalize, self.timing_assemble)
        return data

    def unpack(self, x) -> None:
        """Write a raw solution vector of the current data into the variables."""
        values = self._data.scatter(x)
        for var in self.variables() + self._canonical.aux_variables:
            if var.id in values:
                var.value = values[var.id]

    def _clear_values(self) -> None:
        for var in self.variables() + self._canonical.aux_variables:
            var.value = None

    def solve(self, solver=None) -> float:
        """Solve the problem.

        Args:
            solver: A :class:`~openconic.solvers.ConvexSolver`; a
                :class:`~openconic.solvers.CVXPySolver` by default

        Returns:
            float: The optimal value; ``+inf`` (minimize) or ``-inf`` (maximize)
            when infeasible, the opposite infinity when unbounded

        Raises:
            SolverError: If the solver fails or ends with any other status
        """
        from openconic.solvers.base import INFEASIBLE, OPTIMAL, UNBOUNDED, SolverResult

        data = self.get_problem_data()

        if self.config.dev.profiling:
            import cProfile

            pr = cProfile.Profile()
            pr.enable()

        t_0 = time.time()
        if data.num_vars == 0:
            result = SolverResult(status=_constant_status(data), x=np.zeros(0), objective=data.d)
        else:
            if solver is None:
                from openconic.solvers.cvxpy import CVXPySolver

                solver = CVXPySolver()
            result = solver.solve(data, self.config)
        self.timing_solve = time.time() - t_0

        if self.config.dev.profiling:
            pr.disable()
            # Save results so it can be visualized with snakeviz
            pr.dump_stats("profiling_solve.prof")

        sign = 1.0 if self.objective.sense == "minimize" else -1.0
        self.solver_status = result.status
        if result.status == OPTIMAL:
            self.unpack(result.x)
            objective = result.objective
            if objective is None:
                objective = float(data.c @ result.x + data.d)
            self._value = sign * objective
        elif result.status == INFEASIBLE:
            self._clear_values()
            self._value = sign * np.inf
        elif result.status == UNBOUNDED:
            self._clear_values()
            self._value = -sign * np.inf
        else:
            raise SolverError(f"Solver finished with status {result.status!r}")

        self._status = ProblemStatus.SOLVED
        logger.debug("Solved problem: status %s, value %s", result.status, self._value)
        if self.config.dev.printing:
            io.footer(result.status, self._value, self.timing_solve)
        return self._value

    def __repr__(self):
        return f"Problem({self.objective!r}, {len(self.constraints)} constraints)"
