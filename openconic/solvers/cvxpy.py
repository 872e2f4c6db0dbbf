"""CVXPy-based conic solver.

This module hands assembled conic data to CVXPy, which passes it on to one of
its backend solvers (CLARABEL, ECOS, SCS, MOSEK, ...). Every cone of the
assembled problem becomes one CVXPy constraint over the matching row block of
``A x + b``.
"""

import logging
from typing import TYPE_CHECKING, List

import cvxpy as cp
import numpy as np

from openconic.errors import SolverError

from .base import INFEASIBLE, OPTIMAL, UNBOUNDED, ConvexSolver, SolverResult

if TYPE_CHECKING:
    from openconic.assembly import ConicData
    from openconic.config import Config

logger = logging.getLogger(__name__)

_STATUS = {
    cp.OPTIMAL: OPTIMAL,
    cp.OPTIMAL_INACCURATE: OPTIMAL,
    cp.INFEASIBLE: INFEASIBLE,
    cp.INFEASIBLE_INACCURATE: INFEASIBLE,
    cp.UNBOUNDED: UNBOUNDED,
    cp.UNBOUNDED_INACCURATE: UNBOUNDED,
}


def build_cvxpy_problem(data: "ConicData"):
    """Rebuild the conic problem as a CVXPy problem.

    Returns:
        tuple: ``(cp.Problem, cp.Variable)``
    """
    x = cp.Variable(data.num_vars)
    constraints = []
    row = 0
    for cone in data.cones:
        block = slice(row, row + cone.dim)
        expr = data.A[block, :] @ x + data.b[block]
        if cone.kind == "ZERO":
            constraints.append(expr == 0)
        elif cone.kind == "NONNEG":
            constraints.append(expr >= 0)
        elif cone.kind == "SOC":
            if cone.dim == 1:
                constraints.append(expr >= 0)
            else:
                constraints.append(cp.SOC(expr[0], expr[1:]))
        else:
            raise SolverError(f"CVXPySolver does not support {cone.kind} cones")
        row += cone.dim
    objective = cp.Minimize(data.c @ x + data.d)
    return cp.Problem(objective, constraints), x


class CVXPySolver(ConvexSolver):
    """CVXPy-based conic solver.

    The backend solver, its options and verbosity come from
    ``settings.cvx`` (:class:`~openconic.config.SolverConfig`).

    Example:
        >>> solver = CVXPySolver()
        >>> result = solver.solve(problem.get_problem_data(), problem.config)
        >>> result.status
        'optimal'

    Attributes:
        problem: The CVXPy Problem of the last solve, or None
    """

    def __init__(self):
        self._problem: cp.Problem = None

    @property
    def problem(self) -> cp.Problem:
        return self._problem

    def solve(self, data: "ConicData", settings: "Config") -> SolverResult:
        problem, x = build_cvxpy_problem(data)
        self._problem = problem
        solver = settings.cvx.solver
        try:
            problem.solve(solver=solver, verbose=settings.cvx.verbose, **settings.cvx.solver_args)
        except cp.error.SolverError as e:
            raise SolverError(f"CVXPy solver {solver!r} failed: {e}") from e

        status = _STATUS.get(problem.status, problem.status)
        logger.debug("CVXPy solver %s finished with status %s", solver, problem.status)
        x_value = None if x.value is None else np.asarray(x.value, dtype=float)
        objective = None if problem.value is None else float(problem.value)
        extra = {"cvxpy_status": problem.status}
        if problem.solver_stats is not None:
            extra["solve_time"] = problem.solver_stats.solve_time
            extra["num_iters"] = problem.solver_stats.num_iters
        return SolverResult(status=status, x=x_value, objective=objective, extra=extra)

    def citation(self) -> List[str]:
        """Return BibTeX citations for CVXPy.

        Returns:
            List containing BibTeX entries for CVXPy.
        """
        return [
            r"""@article{diamond2016cvxpy,
  title={CVXPY: A Python-embedded modeling language for convex optimization},
  author={Diamond, Steven and Boyd, Stephen},
  journal={Journal of Machine Learning Research},
  volume={17},
  number={83},
  pages={1--5},
  year={2016}
}""",
        ]
