__all__ = [
    "LayerCountTable",
    "plan_layer_offsets",
]

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
from mpi4py import MPI

from sparse3d_mpi.RowBlockMatrix import RowBlockMatrix
from sparse3d_mpi.utils._common import _prefix_displacements


@dataclass(frozen=True, eq=False)
class LayerCountTable:
    r"""Per-layer transfer sizes and displacements

    Sizes gathered from every layer of the depth dimension, and the derived
    displacements used as transfer tables by the variable-length collectives.
    All displacement arrays have one more entry than there are layers, the
    last one being the total.

    Parameters
    ----------
    nnz_counts : :obj:`numpy.ndarray`
        Number of non-zero values of each layer.
    row_counts : :obj:`numpy.ndarray`
        Number of rows of each layer.
    nrhs : :obj:`int`
        Number of right-hand sides.

    """
    nnz_counts: np.ndarray
    row_counts: np.ndarray
    nrhs: int = 0
    nnz_disp: np.ndarray = field(init=False, repr=False)
    row_disp: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        nnz_counts = np.asarray(self.nnz_counts, dtype=np.int64)
        row_counts = np.asarray(self.row_counts, dtype=np.int64)
        if nnz_counts.shape != row_counts.shape:
            raise ValueError("nnz_counts and row_counts must have one entry per layer")
        if np.any(nnz_counts < 0) or np.any(row_counts < 0) or self.nrhs < 0:
            raise ValueError("Counts must be non-negative")
        object.__setattr__(self, "nnz_counts", nnz_counts)
        object.__setattr__(self, "row_counts", row_counts)
        object.__setattr__(self, "nnz_disp", _prefix_displacements(nnz_counts))
        object.__setattr__(self, "row_disp", _prefix_displacements(row_counts))

    @classmethod
    def from_counts(cls, counts: Sequence[Tuple[int, int]], nrhs: int = 0) -> "LayerCountTable":
        """Build the table from ``(nnz_loc, m_loc)`` pairs ordered by layer"""
        counts = np.asarray(counts, dtype=np.int64).reshape(-1, 2)
        return cls(nnz_counts=counts[:, 0], row_counts=counts[:, 1], nrhs=nrhs)

    @property
    def nlayers(self) -> int:
        return int(self.row_counts.size)

    @property
    def b_counts(self) -> np.ndarray:
        return self.nrhs * self.row_counts

    @property
    def b_disp(self) -> np.ndarray:
        return self.nrhs * self.row_disp

    @property
    def nnz_total(self) -> int:
        return int(self.nnz_disp[-1])

    @property
    def row_total(self) -> int:
        return int(self.row_disp[-1])


def plan_layer_offsets(A: RowBlockMatrix, nrhs: int,
                       zcomm: MPI.Comm) -> Optional[LayerCountTable]:
    r"""Plan the transfer tables of a depth-dimension redistribution

    Collect ``(nnz_loc, m_loc)`` of every layer on the coordinating layer
    (rank 0 of ``zcomm``) and derive the displacement tables. This is a
    collective call over ``zcomm``.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local block of the matrix on this layer.
    nrhs : :obj:`int`
        Number of right-hand sides (``0`` when only the matrix moves).
    zcomm : :obj:`mpi4py.MPI.Comm`
        Communicator along the depth dimension.

    Returns
    -------
    table : :obj:`sparse3d_mpi.redistribution.LayerCountTable`
        Transfer tables on the coordinating layer, ``None`` elsewhere.

    """
    counts = zcomm.gather((A.nnz_loc, A.m_loc), root=0)
    if zcomm.Get_rank() != 0:
        return None
    table = LayerCountTable.from_counts(counts, nrhs=nrhs)
    logging.debug("Layer counts: nnz=%s rows=%s" % (table.nnz_counts.tolist(),
                                                    table.row_counts.tolist()))
    return table
