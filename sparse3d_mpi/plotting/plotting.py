"""
    Plotting functions for layered row distributions
"""

from matplotlib import pyplot as plt
import numpy as np

from sparse3d_mpi.Grid3D import Grid3D
from sparse3d_mpi.RowBlockMatrix import RowBlockMatrix


# Plot which layer and which 2-D rank own each non-zero of the matrix
def plot_layer_rows(A: RowBlockMatrix, grid: Grid3D, title: str = None) -> None:
    """Visualize the distribution of a matrix over a layered grid.

    Collective over the base communicator of ``grid``; the figure is drawn
    on rank 0 only.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local rows of the matrix on this process.
    grid : :obj:`sparse3d_mpi.Grid3D`
        Layered process grid.
    title : :obj:`str`, optional
        Main Title of the figure
    """
    if not isinstance(A, RowBlockMatrix):
        raise TypeError("Not a RowBlockMatrix")
    coo = A.tocsr().tocoo()
    local = (coo.row + A.fst_row, coo.col, grid.zrank, grid.iam)
    global_gather = grid.base_comm.gather(local, root=0)
    if grid.rank == 0:
        layers = np.full(A.shape, np.nan)
        ranks2d = np.full(A.shape, np.nan)
        for rows, cols, zrank, iam in global_gather:
            layers[rows, cols] = zrank
            ranks2d[rows, cols] = iam
        figure, (ax1, ax2) = plt.subplots(nrows=1, ncols=2,
                                          figsize=(18, 5))
        im1 = ax1.matshow(layers, cmap='rainbow')
        ax1.set_title("Layer")
        cbar1 = figure.colorbar(im1, ax=ax1)
        cbar1.set_ticks(np.arange(grid.npdep))
        cbar1.set_label("Layers")
        im2 = ax2.matshow(ranks2d, cmap='rainbow')
        ax2.set_title("2-D rank")
        cbar2 = figure.colorbar(im2, ax=ax2)
        cbar2.set_ticks(np.arange(grid.nprocs2d))
        cbar2.set_label("Ranks")
        plt.suptitle(title)
        plt.tight_layout()
