__all__ = [
    "gather_rhs",
    "scatter_rhs",
    "gather_system",
]

from typing import Optional, Tuple

from sparse3d_mpi.Grid3D import Grid3D
from sparse3d_mpi.RowBlockMatrix import DenseBlock, RowBlockMatrix
from sparse3d_mpi.redistribution.MatrixGather import _gather_matrix
from sparse3d_mpi.redistribution.OffsetPlanner import LayerCountTable, plan_layer_offsets
from sparse3d_mpi.utils._common import _pack_layer_blocks, _unpack_layer_blocks
from sparse3d_mpi.utils._mpi import mpi_gatherv, mpi_scatterv


def _check_rhs(A: RowBlockMatrix, B: DenseBlock):
    if not isinstance(A, RowBlockMatrix):
        raise TypeError(f"A must be a RowBlockMatrix, got {type(A).__name__}")
    if not isinstance(B, DenseBlock):
        raise TypeError(f"B must be a DenseBlock, got {type(B).__name__}")
    if B.m_loc != A.m_loc:
        raise ValueError(f"B has {B.m_loc} rows, A has m_loc={A.m_loc}")


def _gather_rhs(B: DenseBlock, grid: Grid3D,
                table: Optional[LayerCountTable]) -> Optional[DenseBlock]:
    b_counts = b_disp = None
    if table is not None:
        b_counts, b_disp = table.b_counts, table.b_disp
    # layer-major: compact block of layer 0, then layer 1, ...
    flat = mpi_gatherv(grid.zcomm, B.compact(), b_counts, b_disp, engine=B.engine)
    if not grid.is_coordinator:
        return None
    return DenseBlock(_unpack_layer_blocks(flat, table.row_counts,
                                           table.row_disp, table.nrhs))


def gather_rhs(A: RowBlockMatrix, B: DenseBlock, grid: Grid3D) -> Optional[DenseBlock]:
    r"""Consolidate a layered right-hand side on the 2-D grid of layer 0

    Each layer packs its rows of ``B`` tightly, the packed blocks are
    gathered along the depth dimension on layer 0, and re-blocked into a
    column-major matrix whose rows follow the row order of the matrix
    gathered by :func:`sparse3d_mpi.redistribution.gather_matrix`: the rows
    of layer ``i`` land in ``[row_disp[i], row_disp[i + 1])`` of every
    column.

    This is a collective call over the depth communicator of ``grid``.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix distributed over the 3-D grid.
    B : :obj:`sparse3d_mpi.DenseBlock`
        Local rows of the right-hand side, aligned with ``A``.
    grid : :obj:`sparse3d_mpi.Grid3D`
        Layered process grid.

    Returns
    -------
    B2d : :obj:`sparse3d_mpi.DenseBlock`
        Right-hand side on layer 0 with leading dimension equal to the
        number of gathered rows; ``None`` on the other layers.

    Raises
    ------
    TypeError
        If ``A`` or ``B`` have the wrong type.
    ValueError
        If ``B`` is not aligned with ``A``.

    """
    _check_rhs(A, B)
    table = plan_layer_offsets(A, B.nrhs, grid.zcomm)
    return _gather_rhs(B, grid, table)


def scatter_rhs(A2d: Optional[RowBlockMatrix], A: RowBlockMatrix,
                B2d: Optional[DenseBlock], grid: Grid3D,
                B: DenseBlock) -> DenseBlock:
    r"""Redistribute a solution from layer 0 back to all layers

    Inverse of :func:`gather_rhs`: the rows of ``B2d`` are re-blocked in
    layer-major order, scattered along the depth dimension and copied into
    ``B`` honouring its leading dimension. Rows of ``B`` beyond ``m_loc``
    are left untouched.

    This is a collective call over the depth communicator of ``grid``.

    Parameters
    ----------
    A2d : :obj:`sparse3d_mpi.RowBlockMatrix`
        Matrix gathered on layer 0. Only read on layer 0, can be ``None``
        elsewhere.
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix distributed over the 3-D grid.
    B2d : :obj:`sparse3d_mpi.DenseBlock`
        Solution on layer 0. Only read on layer 0, can be ``None``
        elsewhere.
    grid : :obj:`sparse3d_mpi.Grid3D`
        Layered process grid.
    B : :obj:`sparse3d_mpi.DenseBlock`
        Destination, overwritten in place with the local rows of the
        solution.

    Returns
    -------
    B : :obj:`sparse3d_mpi.DenseBlock`
        The updated destination.

    Raises
    ------
    TypeError
        If the arguments have the wrong type.
    ValueError
        If ``B`` is not aligned with ``A``, or ``B2d`` with ``A2d``.
        Errors in ``A2d`` and ``B2d`` are detected on layer 0 and raised on
        every process of its depth communicator.

    """
    _check_rhs(A, B)
    # layer 0 alone holds A2d and B2d, its verdict is shared along the depth
    error = None
    if grid.is_coordinator:
        try:
            _check_rhs(A2d, B2d)
            if B2d.nrhs != B.nrhs:
                raise ValueError(f"B2d has {B2d.nrhs} columns, B has {B.nrhs}")
        except (TypeError, ValueError) as e:
            error = e
    error = grid.zcomm.bcast(error, root=0)
    if error is not None:
        raise error

    table = plan_layer_offsets(A, B.nrhs, grid.zcomm)
    flat = b_counts = b_disp = None
    if table is not None:
        b_counts, b_disp = table.b_counts, table.b_disp
        flat = _pack_layer_blocks(B2d.values, table.row_counts,
                                  table.row_disp, table.nrhs)
    Btmp = mpi_scatterv(grid.zcomm, flat, b_counts, b_disp,
                        count=B.nrhs * A.m_loc, dtype=B.dtype, engine=B.engine)
    B.values[:] = Btmp.reshape((A.m_loc, B.nrhs), order="F")
    return B


def gather_system(A: RowBlockMatrix, B: DenseBlock,
                  grid: Grid3D) -> Tuple[Optional[RowBlockMatrix], Optional[DenseBlock]]:
    r"""Consolidate matrix and right-hand side on layer 0

    Equivalent to :func:`sparse3d_mpi.redistribution.gather_matrix` followed
    by :func:`gather_rhs`, with a single exchange of the layer sizes.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix distributed over the 3-D grid.
    B : :obj:`sparse3d_mpi.DenseBlock`
        Local rows of the right-hand side, aligned with ``A``.
    grid : :obj:`sparse3d_mpi.Grid3D`
        Layered process grid.

    Returns
    -------
    A2d : :obj:`sparse3d_mpi.RowBlockMatrix`
        Matrix on the 2-D grid of layer 0, ``None`` on the other layers.
    B2d : :obj:`sparse3d_mpi.DenseBlock`
        Right-hand side on layer 0, ``None`` on the other layers.

    """
    _check_rhs(A, B)
    table = plan_layer_offsets(A, B.nrhs, grid.zcomm)
    A2d = _gather_matrix(A, grid, table)
    B2d = _gather_rhs(B, grid, table)
    return A2d, B2d
