# Core symbolic expressions - flat namespace for most common functions
import openconic.symbolic.expr.linalg as linalg
from openconic.assembly import ConicAssembler, ConicData
from openconic.config import (
    AssemblyConfig,
    CanonicalizationConfig,
    Config,
    DevConfig,
    SolverConfig,
)
from openconic.errors import (
    AssemblyError,
    DCPViolationError,
    OpenConicError,
    SignDeclarationError,
    SizeMismatchError,
    SolverError,
    ValidationError,
)
from openconic.problem import Maximize, Minimize, Problem, ProblemStatus
from openconic.symbolic import (
    Canonicalizer,
    Curvature,
    Session,
    Sign,
    SOCAxis,
    canonicalize,
    cone_size,
    num_cones,
)
from openconic.symbolic.expr import (
    SOC,
    Abs,
    CallbackParam,
    Constant,
    Expr,
    Hstack,
    InvPos,
    Leaf,
    Max,
    MaxEntries,
    Min,
    MinEntries,
    Norm,
    Parameter,
    PositivePart,
    Power,
    QuadOverLin,
    Reshape,
    Sqrt,
    Square,
    Sum,
    Transpose,
    Variable,
    Vstack,
    get_data,
    sum_squares,
    traverse,
)

__all__ = [
    # Main entrypoint
    "Problem",
    "Minimize",
    "Maximize",
    "ProblemStatus",
    # Core base classes
    "Expr",
    "Leaf",
    "Constant",
    "Parameter",
    "CallbackParam",
    "Variable",
    "get_data",
    "traverse",
    # Atoms
    "Sum",
    "Transpose",
    "Reshape",
    "Hstack",
    "Vstack",
    "Abs",
    "Square",
    "Sqrt",
    "Power",
    "InvPos",
    "PositivePart",
    "Max",
    "Min",
    "MaxEntries",
    "MinEntries",
    "Norm",
    "QuadOverLin",
    "sum_squares",
    "SOC",
    # Submodules
    "linalg",
    # Analysis and compilation
    "Sign",
    "Curvature",
    "Session",
    "Canonicalizer",
    "canonicalize",
    "SOCAxis",
    "num_cones",
    "cone_size",
    "ConicAssembler",
    "ConicData",
    # Configuration
    "Config",
    "CanonicalizationConfig",
    "AssemblyConfig",
    "SolverConfig",
    "DevConfig",
    # Errors
    "OpenConicError",
    "ValidationError",
    "SignDeclarationError",
    "DCPViolationError",
    "SizeMismatchError",
    "AssemblyError",
    "SolverError",
]
