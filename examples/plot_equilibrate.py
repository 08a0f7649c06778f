"""
Power-of-radix Equilibration
============================
This example shows how to use :py:func:`sparse3d_mpi.equilibrate` to compute
row and column scale factors of a badly scaled, row-distributed sparse
matrix. Scale factors are powers of the radix, so applying them introduces
no rounding error.
"""

from matplotlib import pyplot as plt
import numpy as np
import scipy.sparse as sp
from mpi4py import MPI

import sparse3d_mpi

plt.close("all")
np.random.seed(42)

comm = MPI.COMM_WORLD
rank = comm.Get_rank()

###############################################################################
# Let's create a matrix whose rows span several orders of magnitude and
# distribute its rows over all processes.
n = 30
Aglob = sp.random(n, n, density=0.2, format="csr",
                  random_state=np.random.RandomState(0)) + sp.eye(n)
Aglob = sp.diags(10. ** np.linspace(-6, 6, n)) @ Aglob
A = sparse3d_mpi.RowBlockMatrix.from_global(Aglob, base_comm=comm)

###############################################################################
# Every process receives the global scale factors.
result = sparse3d_mpi.equilibrate(A, comm)
if rank == 0:
    print(f"info={result.info} rowcnd={result.rowcnd:.3e} "
          f"colcnd={result.colcnd:.3e} amax={result.amax:.3e}")

###############################################################################
# The scaled matrix :math:`\mathbf{D}_r \mathbf{A} \mathbf{D}_c` has entries
# of magnitude at most 1.
As = sp.diags(result.r) @ Aglob @ sp.diags(result.c)
if rank == 0:
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    ax1.matshow(np.log10(np.abs(Aglob.toarray()) + 1e-30), vmin=-8, vmax=8, cmap='rainbow')
    ax1.set_title("log10 |A|")
    im2 = ax2.matshow(np.log10(np.abs(As.toarray()) + 1e-30), vmin=-8, vmax=8, cmap='rainbow')
    ax2.set_title("log10 |R A C|")
    fig.colorbar(im2, ax=ax2)
    plt.tight_layout()
