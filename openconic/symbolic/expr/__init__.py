# Specialized constraints
from .constraint import SOC

# Core base classes and fundamental operations
from .expr import (
    Add,
    Atom,
    CallbackParam,
    Constant,
    Constraint,
    Div,
    Equality,
    Expr,
    Index,
    Inequality,
    Leaf,
    MatMul,
    Mul,
    Neg,
    Parameter,
    Power,
    Sub,
    Sum,
    get_data,
    to_expr,
    traverse,
)

# Linear algebra operations
from .linalg import Hstack, Norm, Reshape, Transpose, Vstack, norm1, norm2, norm_inf

# Mathematical functions
from .math import (
    Abs,
    InvPos,
    Max,
    MaxEntries,
    Min,
    MinEntries,
    PositivePart,
    QuadOverLin,
    Sqrt,
    Square,
    sum_squares,
)

# Variable
from .variable import Variable

__all__ = [
    # Core base classes and fundamental operations
    "Expr",
    "Atom",
    "Leaf",
    "Constant",
    "Parameter",
    "CallbackParam",
    "get_data",
    "to_expr",
    "traverse",
    "Add",
    "Sub",
    "Mul",
    "Div",
    "MatMul",
    "Neg",
    "Power",
    "Sum",
    "Index",
    "Constraint",
    "Equality",
    "Inequality",
    # Variable
    "Variable",
    # Mathematical functions
    "Abs",
    "Square",
    "Sqrt",
    "InvPos",
    "PositivePart",
    "Max",
    "Min",
    "MaxEntries",
    "MinEntries",
    "QuadOverLin",
    "sum_squares",
    # Linear algebra operations
    "Transpose",
    "Reshape",
    "Hstack",
    "Vstack",
    "Norm",
    "norm1",
    "norm2",
    "norm_inf",
    # Specialized constraints
    "SOC",
]
