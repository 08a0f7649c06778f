"""Test the RowBlockMatrix and DenseBlock classes
    Designed to run with n processes
    $ mpiexec -n 4 pytest test_rowblockmatrix.py --with-mpi
"""
import numpy as np
from mpi4py import MPI
import pytest
import scipy.sparse as sp
from numpy.testing import assert_array_equal

from sparse3d_mpi import DenseBlock, RowBlockMatrix, row_split
from sparse3d_mpi.utils import partitiontest

par1 = {'nrow': 10, 'size': 3, 'ranges': [(0, 4), (4, 3), (7, 3)]}
par2 = {'nrow': 2, 'size': 4, 'ranges': [(0, 1), (1, 1), (2, 0), (2, 0)]}
par3 = {'nrow': 8, 'size': 1, 'ranges': [(0, 8)]}


class _FakeComm:
    def __init__(self, rank, size):
        self.rank, self.size = rank, size

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.size


@pytest.mark.parametrize("par", [(par1), (par2), (par3)])
def test_row_split(par):
    """Contiguous balanced row ranges"""
    ranges = [row_split(par['nrow'], _FakeComm(rank, par['size']))
              for rank in range(par['size'])]
    assert ranges == par['ranges']


def test_from_scipy():
    """Round trip through SciPy CSR"""
    A = sp.random(6, 9, density=0.4, format="csr", random_state=np.random.RandomState(0))
    Aloc = RowBlockMatrix.from_scipy(A[2:5], 2, shape=A.shape)
    assert Aloc.m_loc == 3
    assert Aloc.nnz_loc == A[2:5].nnz
    assert Aloc.fst_row == 2
    assert Aloc.shape == (6, 9)
    assert Aloc.engine == "numpy"
    assert Aloc.rowptr.dtype == np.int64
    assert_array_equal(Aloc.tocsr().toarray(), A[2:5].toarray())


@pytest.mark.parametrize("kwargs", [
    # rowptr[0] != 0
    dict(nzval=np.ones(2), colind=[0, 1], rowptr=[1, 2], fst_row=0, shape=(1, 2)),
    # rowptr[m_loc] != nnz_loc
    dict(nzval=np.ones(2), colind=[0, 1], rowptr=[0, 1], fst_row=0, shape=(1, 2)),
    # decreasing rowptr
    dict(nzval=np.ones(2), colind=[0, 1], rowptr=[0, 2, 1, 2], fst_row=0, shape=(3, 2)),
    # colind and nzval of different lengths
    dict(nzval=np.ones(2), colind=[0], rowptr=[0, 2], fst_row=0, shape=(1, 2)),
    # column index out of range
    dict(nzval=np.ones(2), colind=[0, 2], rowptr=[0, 2], fst_row=0, shape=(1, 2)),
    # rows out of range
    dict(nzval=np.ones(2), colind=[0, 1], rowptr=[0, 2], fst_row=3, shape=(3, 2)),
    # negative shape
    dict(nzval=np.ones(0), colind=[], rowptr=[0], fst_row=0, shape=(-1, 2)),
    # empty rowptr
    dict(nzval=np.ones(0), colind=[], rowptr=[], fst_row=0, shape=(1, 2)),
])
def test_invalid_metadata(kwargs):
    """Malformed metadata is detected locally"""
    with pytest.raises(ValueError):
        RowBlockMatrix(**kwargs)


def test_dense_block():
    """Leading dimension larger than the number of rows"""
    buffer = np.arange(12, dtype=np.float64).reshape(4, 3)
    B = DenseBlock(buffer, m_loc=2)
    assert B.ldb == 4
    assert B.nrhs == 3
    assert B.buffer.flags.f_contiguous
    assert_array_equal(B.values, buffer[:2])
    # column-major packing with stride m_loc
    assert_array_equal(B.compact(), [0., 3., 1., 4., 2., 5.])

    E = DenseBlock.empty(3, 2, ldb=5, dtype=np.complex128)
    assert E.ldb == 5 and E.m_loc == 3 and E.dtype == np.complex128
    assert E.compact().size == 6

    with pytest.raises(ValueError):
        DenseBlock(np.zeros((2, 2)), m_loc=3)
    with pytest.raises(ValueError):
        DenseBlock(np.zeros(4))
    with pytest.raises(ValueError):
        DenseBlock.empty(4, 1, ldb=2)


@pytest.mark.mpi(min_size=2)
def test_from_global_partition():
    """Rows distributed with from_global tile the global matrix"""
    comm = MPI.COMM_WORLD
    A = sp.random(23, 7, density=0.5, format="csr", random_state=np.random.RandomState(1))
    Aloc = RowBlockMatrix.from_global(A, base_comm=comm)
    assert partitiontest(Aloc, comm)
    blocks = comm.allgather(Aloc.tocsr())
    assert_array_equal(sp.vstack(blocks).toarray(), A.toarray())


@pytest.mark.mpi(min_size=2)
def test_partitiontest_failure():
    """Overlapping row ranges are detected on every rank"""
    comm = MPI.COMM_WORLD
    nrow = comm.Get_size()
    A = RowBlockMatrix.from_scipy(sp.eye(1, nrow, format="csr"), 0, shape=(nrow, nrow))
    assert not partitiontest(A, comm, raiseerror=False)
    with pytest.raises(AssertionError):
        partitiontest(A, comm)
