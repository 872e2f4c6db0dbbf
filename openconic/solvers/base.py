"""Base class for conic solvers.

This module defines the interface that solver backends implement to consume
assembled :class:`~openconic.assembly.ConicData`. A backend owns no modeling
logic: it receives ``(A, b, c, d, cones)``, solves

    minimize    c^T x + d
    subject to  A x + b ∈ K

and returns the raw primal vector. Scattering the vector back into variables
is the problem's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np

if TYPE_CHECKING:
    from openconic.assembly import ConicData
    from openconic.config import Config

OPTIMAL = "optimal"
INFEASIBLE = "infeasible"
UNBOUNDED = "unbounded"


@dataclass
class SolverResult:
    """Outcome of one solve.

    Attributes:
        status: One of ``"optimal"``, ``"infeasible"``, ``"unbounded"``, or the
            backend's own status string for anything else
        x: Primal solution vector, or None when there is none
        objective: ``c^T x + d`` at the solution, or None
        extra: Backend-specific information (solve time, iterations, raw status)
    """

    status: str
    x: Optional[np.ndarray] = None
    objective: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class ConvexSolver(ABC):
    """Abstract base class for conic solver backends.

    Example:
        Implementing a custom solver::

            class MySolver(ConvexSolver):
                def solve(self, data, settings) -> SolverResult:
                    x = my_conic_solve(data.A, data.b, data.c, data.cones)
                    return SolverResult("optimal", x, float(data.c @ x + data.d))

                def citation(self):
                    return []
    """

    @abstractmethod
    def solve(self, data: "ConicData", settings: "Config") -> SolverResult:
        """Solve the assembled conic problem.

        Args:
            data: Assembled problem data
            settings: Configuration object with solver settings

        Returns:
            SolverResult: Status, primal vector and objective value

        Raises:
            SolverError: If the backend fails to run
        """
        ...

    @abstractmethod
    def citation(self) -> List[str]:
        """Return BibTeX citations for this solver.

        Returns:
            List of BibTeX citation strings.
        """
        ...
