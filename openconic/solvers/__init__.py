"""Conic solver backends.

Solvers consume assembled :class:`~openconic.assembly.ConicData` and return a
:class:`SolverResult` holding the raw primal vector.

Current Implementations:
    CVXPy Solver: The default backend, rebuilding the conic program with
        CVXPy and dispatching it to any of CVXPy's second-order-cone capable
        solvers (CLARABEL, ECOS, SCS, MOSEK, ...).

Custom backends implement the :class:`ConvexSolver` interface.
"""

from .base import ConvexSolver, SolverResult
from .cvxpy import CVXPySolver

__all__ = [
    "ConvexSolver",
    "SolverResult",
    "CVXPySolver",
]
