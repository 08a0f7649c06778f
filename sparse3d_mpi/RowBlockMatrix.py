__all__ = [
    "row_split",
    "RowBlockMatrix",
    "DenseBlock",
]

from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp
from mpi4py import MPI
from pylops.utils import DTypeLike, NDArray
from pylops.utils.backend import get_array_module, get_module, get_module_name, to_numpy


def row_split(nrow: int, base_comm: MPI.Comm = MPI.COMM_WORLD) -> Tuple[int, int]:
    """Contiguous rows owned by the calling rank

    Rows are split as evenly as possible, with the first
    ``nrow % size`` ranks owning one extra row.

    Parameters
    ----------
    nrow : :obj:`int`
        Global number of rows.
    base_comm : :obj:`mpi4py.MPI.Comm`, optional
        Communicator over which rows are distributed.
        Defaults to ``mpi4py.MPI.COMM_WORLD``.

    Returns
    -------
    fst_row : :obj:`int`
        Global index of the first owned row.
    m_loc : :obj:`int`
        Number of owned rows.
    """
    rank, size = base_comm.Get_rank(), base_comm.Get_size()
    base, extra = divmod(nrow, size)
    m_loc = base + 1 if rank < extra else base
    fst_row = rank * base + min(rank, extra)
    return fst_row, m_loc


class RowBlockMatrix:
    r"""Row-distributed sparse matrix

    Local block of contiguous rows of a global sparse matrix stored in
    compressed sparse row format with zero-based indices. Each process owns
    rows ``[fst_row, fst_row + m_loc)``; the row ranges of all processes
    partition ``[0, nrow)`` in rank order.

    Parameters
    ----------
    nzval : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Non-zero values of the local rows, packed by row.
    colind : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Global column index of each non-zero value.
    rowptr : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Start of each local row in ``nzval``/``colind``, with
        ``rowptr[0] = 0`` and ``rowptr[m_loc] = nnz_loc``.
    fst_row : :obj:`int`
        Global index of the first local row.
    shape : :obj:`tuple`
        Global shape ``(nrow, ncol)`` of the matrix.

    Attributes
    ----------
    nnz_loc : :obj:`int`
        Number of local non-zero values.
    m_loc : :obj:`int`
        Number of local rows.
    engine : :obj:`str`
        Engine used to store the arrays (``numpy`` or ``cupy``)

    Raises
    ------
    ValueError
        If the metadata of the local block is inconsistent. The check is
        purely local and performs no communication.

    """

    def __init__(self, nzval: NDArray, colind: NDArray, rowptr: NDArray,
                 fst_row: int, shape: Tuple[int, int]):
        ncp = get_array_module(nzval)
        self.nzval = ncp.asarray(nzval)
        self.colind = ncp.asarray(colind, dtype=np.int64)
        self.rowptr = ncp.asarray(rowptr, dtype=np.int64)
        self.fst_row = int(fst_row)
        self.shape = (int(shape[0]), int(shape[1]))
        self._check()

    def _check(self):
        nrow, ncol = self.shape
        if nrow < 0 or ncol < 0:
            raise ValueError(f"Global shape must be non-negative, got {self.shape}")
        if self.nzval.ndim != 1 or self.colind.ndim != 1 or self.rowptr.ndim != 1:
            raise ValueError("nzval, colind and rowptr must be 1-dimensional")
        if self.rowptr.size < 1:
            raise ValueError("rowptr must have at least one entry")
        if self.colind.size != self.nzval.size:
            raise ValueError(f"colind has {self.colind.size} entries, "
                             f"nzval has {self.nzval.size}")
        if not (0 <= self.fst_row and self.fst_row + self.m_loc <= nrow):
            raise ValueError(f"Rows [{self.fst_row}, {self.fst_row + self.m_loc}) "
                             f"out of range for a matrix with {nrow} rows")
        rowptr = to_numpy(self.rowptr)
        if rowptr[0] != 0:
            raise ValueError(f"rowptr[0] must be 0, got {rowptr[0]}")
        if rowptr[-1] != self.nnz_loc:
            raise ValueError(f"rowptr[m_loc]={rowptr[-1]} differs from nnz_loc={self.nnz_loc}")
        if np.any(np.diff(rowptr) < 0):
            raise ValueError("rowptr must be non-decreasing")
        if self.nnz_loc > 0:
            colind = to_numpy(self.colind)
            if colind.min() < 0 or colind.max() >= ncol:
                raise ValueError(f"Column indices must lie in [0, {ncol})")

    @property
    def nnz_loc(self) -> int:
        return int(self.nzval.size)

    @property
    def m_loc(self) -> int:
        return int(self.rowptr.size) - 1

    @property
    def nrow(self) -> int:
        return self.shape[0]

    @property
    def ncol(self) -> int:
        return self.shape[1]

    @property
    def dtype(self):
        return self.nzval.dtype

    @property
    def engine(self) -> str:
        return get_module_name(get_array_module(self.nzval))

    @classmethod
    def from_scipy(cls, A: sp.spmatrix, fst_row: int,
                   shape: Optional[Tuple[int, int]] = None,
                   engine: Optional[str] = "numpy") -> "RowBlockMatrix":
        """Local block from a SciPy sparse matrix

        Parameters
        ----------
        A : :obj:`scipy.sparse.spmatrix`
            Local rows, of shape ``(m_loc, ncol)``.
        fst_row : :obj:`int`
            Global index of the first local row.
        shape : :obj:`tuple`, optional
            Global shape. Defaults to ``(fst_row + m_loc, ncol)``, which is
            only correct on the last rank.
        engine : :obj:`str`, optional
            Engine used to store the arrays (``numpy`` or ``cupy``)

        Returns
        -------
        A : :obj:`sparse3d_mpi.RowBlockMatrix`
            Local block.
        """
        A = sp.csr_matrix(A)
        A.sort_indices()
        if shape is None:
            shape = (fst_row + A.shape[0], A.shape[1])
        ncp = get_module(engine)
        return cls(nzval=ncp.asarray(A.data), colind=ncp.asarray(A.indices),
                   rowptr=ncp.asarray(A.indptr), fst_row=fst_row, shape=shape)

    @classmethod
    def from_global(cls, A: sp.spmatrix,
                    base_comm: MPI.Comm = MPI.COMM_WORLD,
                    engine: Optional[str] = "numpy") -> "RowBlockMatrix":
        """Distribute the rows of a global matrix

        Every rank passes the same global matrix and keeps the rows
        assigned to it by :func:`row_split`.

        Parameters
        ----------
        A : :obj:`scipy.sparse.spmatrix`
            Global matrix.
        base_comm : :obj:`mpi4py.MPI.Comm`, optional
            Communicator over which rows are distributed.
        engine : :obj:`str`, optional
            Engine used to store the arrays (``numpy`` or ``cupy``)

        Returns
        -------
        A : :obj:`sparse3d_mpi.RowBlockMatrix`
            Local block.
        """
        A = sp.csr_matrix(A)
        fst_row, m_loc = row_split(A.shape[0], base_comm)
        return cls.from_scipy(A[fst_row:fst_row + m_loc], fst_row,
                              shape=A.shape, engine=engine)

    def tocsr(self) -> sp.csr_matrix:
        """Local rows as a ``(m_loc, ncol)`` SciPy CSR matrix"""
        return sp.csr_matrix((to_numpy(self.nzval), to_numpy(self.colind),
                              to_numpy(self.rowptr)),
                             shape=(self.m_loc, self.ncol))

    def __repr__(self):
        return (f"<RowBlockMatrix rows=[{self.fst_row}, {self.fst_row + self.m_loc}) "
                f"nnz_loc={self.nnz_loc} shape={self.shape} dtype={self.dtype}>")


class DenseBlock:
    r"""Column-major dense block aligned with a row distribution

    Local ``m_loc x nrhs`` rows of a dense multi-vector, stored column-major
    in a buffer whose leading dimension ``ldb`` may exceed ``m_loc``.

    Parameters
    ----------
    buffer : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Storage of shape ``(ldb, nrhs)``. Converted to Fortran order if
        needed.
    m_loc : :obj:`int`, optional
        Number of meaningful rows. Defaults to ``ldb``.

    Raises
    ------
    ValueError
        If ``buffer`` is not 2-dimensional or ``m_loc > ldb``.

    """

    def __init__(self, buffer: NDArray, m_loc: Optional[int] = None):
        if buffer.ndim != 2:
            raise ValueError(f"buffer must be 2-dimensional, got {buffer.ndim} dimensions")
        ncp = get_array_module(buffer)
        self.buffer = ncp.asfortranarray(buffer)
        self.m_loc = self.ldb if m_loc is None else int(m_loc)
        if not 0 <= self.m_loc <= self.ldb:
            raise ValueError(f"ldb={self.ldb} must be at least m_loc={self.m_loc}")

    @property
    def ldb(self) -> int:
        return int(self.buffer.shape[0])

    @property
    def nrhs(self) -> int:
        return int(self.buffer.shape[1])

    @property
    def dtype(self):
        return self.buffer.dtype

    @property
    def engine(self) -> str:
        return get_module_name(get_array_module(self.buffer))

    @property
    def values(self) -> NDArray:
        """View of the meaningful ``(m_loc, nrhs)`` rows"""
        return self.buffer[:self.m_loc]

    def compact(self) -> NDArray:
        """Tightly packed column-major copy of :attr:`values` (stride ``m_loc``)"""
        ncp = get_array_module(self.buffer)
        return ncp.ascontiguousarray(self.values.ravel(order="F"))

    @classmethod
    def empty(cls, m_loc: int, nrhs: int, ldb: Optional[int] = None,
              dtype: DTypeLike = np.float64,
              engine: Optional[str] = "numpy") -> "DenseBlock":
        ncp = get_module(engine)
        ldb = m_loc if ldb is None else ldb
        if ldb < m_loc:
            raise ValueError(f"ldb={ldb} must be at least m_loc={m_loc}")
        return cls(ncp.zeros((ldb, nrhs), dtype=dtype, order="F"), m_loc=m_loc)

    def __repr__(self):
        return f"<DenseBlock m_loc={self.m_loc} nrhs={self.nrhs} ldb={self.ldb} dtype={self.dtype}>"
