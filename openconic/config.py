from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class CanonicalizationConfig:
    def __init__(self, check_sizes: bool = True, memoize: bool = True):
        """
        Configuration class for expression canonicalization.

        Args:
            check_sizes (bool): Verify that every canonical affine form has the size of the node it came
                from and raise `SizeMismatchError` otherwise. Defaults to True.
            memoize (bool): Canonicalize shared subexpressions once per problem and reuse the result.
                Turning this off duplicates the auxiliary variables and constraints of shared nodes.
                Defaults to True.
        """
        self.check_sizes = check_sizes
        self.memoize = memoize


@dataclass
class AssemblyConfig:
    def __init__(self, dtype=float, drop_zeros: bool = True):
        """
        Configuration class for numeric assembly of the conic problem.

        Args:
            dtype: Floating point type of the assembled `A`, `b` and `c`. Defaults to float.
            drop_zeros (bool): Remove explicitly stored zeros from `A` (e.g. from a parameter whose
                current value has zero entries). Defaults to True.
        """
        self.dtype = dtype
        self.drop_zeros = drop_zeros


@dataclass
class SolverConfig:
    def __init__(
        self,
        solver: str = "CLARABEL",
        solver_args: Optional[Dict] = None,
        verbose: bool = False,
    ):
        """
        Configuration class for the external conic solver.

        Main arguments:
        These are the arguments most commonly used day-to-day.

        Args:
            solver (str): Name of the CVXPY solver used by `CVXPySolver`. Any solver that accepts second-order
                cones works; a list of options can be found
                [here](https://www.cvxpy.org/tutorial/solvers/index.html). Defaults to "CLARABEL".
            solver_args (dict, optional): Extra keyword arguments passed to the solver, such as tolerances.
                Defaults to an empty dictionary.
            verbose (bool): Let the solver print its own progress. Defaults to False.
        """
        self.solver = solver
        self.solver_args = solver_args if solver_args is not None else {}
        self.verbose = verbose


@dataclass
class DevConfig:
    def __init__(self, printing: bool = False, profiling: bool = False):
        """
        Configuration class for development settings.

        Args:
            printing (bool): Print a summary of the assembled problem and the solve. Defaults to False.
            profiling (bool): Profile assembly and solve with cProfile. Results are written to
                `profiling_assemble.prof` and `profiling_solve.prof`. Defaults to False.
        """
        self.printing = printing
        self.profiling = profiling


@dataclass
class Config:
    canon: CanonicalizationConfig = field(default_factory=CanonicalizationConfig)
    asm: AssemblyConfig = field(default_factory=AssemblyConfig)
    cvx: SolverConfig = field(default_factory=SolverConfig)
    dev: DevConfig = field(default_factory=DevConfig)
