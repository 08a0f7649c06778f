"""
Layered Gather and Scatter
==========================
This example shows how to use :py:func:`sparse3d_mpi.gather_system` and
:py:func:`sparse3d_mpi.scatter_rhs` to move a row-distributed sparse matrix
and its right-hand sides from a layered (3-D) process grid to the 2-D grid
of the first layer and back.

Run it with an even number of processes, e.g.
``mpiexec -n 4 python plot_layered_gather.py``.
"""

from matplotlib import pyplot as plt
import numpy as np
import scipy.sparse as sp
from mpi4py import MPI

import sparse3d_mpi

plt.close("all")
np.random.seed(42)

comm = MPI.COMM_WORLD
size = comm.Get_size()

###############################################################################
# Let's start by arranging the processes in two layers, each a single row of
# ``size // 2`` processes. Rows are distributed over the ``layered_comm``
# communicator of the grid, so that the two layers sharing a 2-D position own
# consecutive rows.
npdep = 2 if size % 2 == 0 else 1
grid = sparse3d_mpi.Grid3D.from_size(npdep, base_comm=comm)

n, nrhs = 40, 2
Aglob = sp.random(n, n, density=0.1, format="csr",
                  random_state=np.random.RandomState(0)) + sp.eye(n)
A = sparse3d_mpi.RowBlockMatrix.from_global(Aglob, base_comm=grid.layered_comm)
sparse3d_mpi.plot_layer_rows(A, grid, title="3-D distribution")

###############################################################################
# The right-hand side is stored column-major with a leading dimension larger
# than the number of local rows.
B = sparse3d_mpi.DenseBlock(np.asfortranarray(np.random.normal(0., 1., (A.m_loc + 2, nrhs))),
                            m_loc=A.m_loc)

###############################################################################
# Gather matrix and right-hand side on layer 0. Processes of the other layers
# receive ``None``.
A2d, B2d = sparse3d_mpi.gather_system(A, B, grid)
if grid.is_coordinator:
    print(f"Rank {grid.rank}: rows [{A2d.fst_row}, {A2d.fst_row + A2d.m_loc}), "
          f"nnz_loc={A2d.nnz_loc}, B2d={B2d}")
    sparse3d_mpi.utils.partitiontest(A2d, grid.comm2d, verb=True)

###############################################################################
# After solving on layer 0 (here the right-hand side is simply sent back), the
# solution is scattered to all layers in the original row distribution.
X = sparse3d_mpi.DenseBlock.empty(A.m_loc, nrhs, ldb=A.m_loc + 2)
sparse3d_mpi.scatter_rhs(A2d, A, B2d, grid, X)
print(f"Rank {grid.rank}: round trip exact: {np.array_equal(X.values, B.values)}")
