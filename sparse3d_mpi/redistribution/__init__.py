"""
Layered Redistribution using MPI
================================

The subpackage redistribution moves a row-distributed sparse matrix and
its dense right-hand sides between a layered (3-D) process grid and the
2-D grid of its first layer.

A list of routines present in sparse3d_mpi.redistribution:
    LayerCountTable                   Per-layer transfer sizes and displacements
    plan_layer_offsets                Gather layer sizes and build transfer tables
    gather_matrix                     Consolidate a matrix on layer 0
    gather_rhs                        Consolidate a right-hand side on layer 0
    scatter_rhs                       Redistribute a solution back to all layers
    gather_system                     Consolidate matrix and right-hand side on layer 0

"""

from .OffsetPlanner import *
from .MatrixGather import *
from .RhsRedistribute import *

__all__ = [
    "LayerCountTable",
    "plan_layer_offsets",
    "gather_matrix",
    "gather_rhs",
    "scatter_rhs",
    "gather_system",
]
