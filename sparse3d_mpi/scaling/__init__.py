"""
Equilibration using MPI
=======================

The subpackage scaling computes scale factors of a row-distributed
sparse matrix.

A list of routines present in sparse3d_mpi.scaling:
    equilibrate                       Power-of-radix row and column scalings
    round_to_radix                    Round values down to powers of the radix
    EquilibrationResult               Scale factors, condition estimates and status

"""

from .Equilibrate import *

__all__ = [
    "equilibrate",
    "round_to_radix",
    "EquilibrationResult",
]
