__all__ = [
    "gather_matrix",
]

from typing import Optional

import numpy as np
from pylops.utils.backend import get_module

from sparse3d_mpi.Grid3D import Grid3D
from sparse3d_mpi.RowBlockMatrix import RowBlockMatrix
from sparse3d_mpi.redistribution.OffsetPlanner import LayerCountTable, plan_layer_offsets
from sparse3d_mpi.utils._mpi import mpi_gatherv, range_offsets


def _gather_matrix(A: RowBlockMatrix, grid: Grid3D,
                   table: Optional[LayerCountTable]) -> Optional[RowBlockMatrix]:
    # data-exchange along the depth dimension, tables already known on layer 0
    engine = A.engine
    zcomm = grid.zcomm
    nnz_counts = row_counts = nnz_disp = row_disp = None
    if table is not None:
        nnz_counts, nnz_disp = table.nnz_counts, table.nnz_disp
        row_counts, row_disp = table.row_counts, table.row_disp

    nzval = mpi_gatherv(zcomm, A.nzval, nnz_counts, nnz_disp, engine=engine)
    colind = mpi_gatherv(zcomm, A.colind, nnz_counts, nnz_disp, engine=engine)
    rowptr_tail = mpi_gatherv(zcomm, A.rowptr[1:], row_counts, row_disp, engine=engine)

    if not grid.is_coordinator:
        return None

    # row pointers of each layer are relative to its own non-zero block
    ncp = get_module(engine)
    rowptr = ncp.empty(table.row_total + 1, dtype=np.int64)
    rowptr[0] = 0
    rowptr[1:] = rowptr_tail
    for i in range(table.nlayers):
        rowptr[int(row_disp[i]) + 1:int(row_disp[i + 1]) + 1] += int(nnz_disp[i])

    # global offset follows the rank order of the 2-D grid, not of the input
    _, fst_rows = range_offsets(grid.comm2d, table.row_total)
    fst_row = int(fst_rows[grid.comm2d.Get_rank()])
    return RowBlockMatrix(nzval=nzval, colind=colind, rowptr=rowptr,
                          fst_row=fst_row, shape=A.shape)


def gather_matrix(A: RowBlockMatrix, grid: Grid3D) -> Optional[RowBlockMatrix]:
    r"""Consolidate a layered matrix on the 2-D grid of layer 0

    The local blocks of the processes sharing the same 2-D position on all
    layers are concatenated, in layer order, on the process of layer 0.
    Non-zero values and column indices are appended as they are; row
    pointers are rebased by the number of non-zero values of the preceding
    layers. The global index of the first row is then recomputed from the
    number of rows gathered on each process of the 2-D grid of layer 0.

    This is a collective call: every process of ``grid`` must take part.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix distributed over the 3-D grid.
    grid : :obj:`sparse3d_mpi.Grid3D`
        Layered process grid.

    Returns
    -------
    A2d : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix distributed over the 2-D grid of layer 0;
        ``None`` on the other layers.

    Raises
    ------
    TypeError
        If ``A`` is not a :obj:`sparse3d_mpi.RowBlockMatrix`.

    Notes
    -----
    The communication happens in three steps which must not be reordered:
    the sizes of each layer are gathered along the depth dimension, then
    the data is gathered along the depth dimension, and finally the row
    counts are exchanged within the 2-D grid of layer 0 to compute
    ``fst_row`` as the exclusive prefix sum of the row counts in 2-D rank
    order.

    """
    if not isinstance(A, RowBlockMatrix):
        raise TypeError(f"A must be a RowBlockMatrix, got {type(A).__name__}")
    table = plan_layer_offsets(A, 0, grid.zcomm)
    return _gather_matrix(A, grid, table)
