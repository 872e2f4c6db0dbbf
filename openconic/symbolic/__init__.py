"""Symbolic expression layer: node types, DCP analysis and canonicalization."""

from .affine import CONSTANT, AffineExpr, LinOpKind, get_coefficients
from .canonicalizer import Canonicalizer, canonicalize, graph_implementation
from .cones import (
    CanonicalConstraint,
    Cone,
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
from .curvature import Curvature, Monotonicity, dcp_curvature
from .dcp import curvature_of, sign_of
from .evaluate import evaluate
from .ids import IdAllocator, Session, current_session, get_id
from .sign import Sign

__all__ = [
    "AffineExpr",
    "LinOpKind",
    "CONSTANT",
    "get_coefficients",
    "Canonicalizer",
    "canonicalize",
    "graph_implementation",
    "CanonicalConstraint",
    "ZeroConstraint",
    "NonNegConstraint",
    "SOCConstraint",
    "Cone",
    "ZeroCone",
    "NonNegCone",
    "SOCone",
    "SOCAxis",
    "num_cones",
    "cone_size",
    "Curvature",
    "Monotonicity",
    "dcp_curvature",
    "curvature_of",
    "sign_of",
    "evaluate",
    "IdAllocator",
    "Session",
    "current_session",
    "get_id",
    "Sign",
]
