"""Test the Grid3D topology and the contiguous-range helpers
    Designed to run with n processes
    $ mpiexec -n 4 pytest test_grid.py --with-mpi
"""
import numpy as np
from mpi4py import MPI
import pytest
from numpy.testing import assert_array_equal

from sparse3d_mpi import Grid3D
from sparse3d_mpi.utils import _mpi, allgather_ranges, deps, range_offsets


def test_grid_serial():
    """A single process is a 1x1x1 grid"""
    grid = Grid3D(1, 1, 1, base_comm=MPI.COMM_SELF)
    assert grid.zrank == 0 and grid.iam == 0
    assert grid.is_coordinator
    assert grid.nprocs2d == 1
    assert grid.comm2d.Get_size() == 1
    assert grid.zcomm.Get_size() == 1
    grid.free()


def test_grid_invalid():
    """Grid shape must match the communicator"""
    with pytest.raises(ValueError):
        Grid3D(1, 1, 2, base_comm=MPI.COMM_SELF)
    with pytest.raises(ValueError):
        Grid3D(0, 1, 1, base_comm=MPI.COMM_SELF)
    with pytest.raises(ValueError):
        Grid3D.from_size(3, base_comm=MPI.COMM_SELF)


@pytest.mark.mpi(min_size=2)
def test_grid_layers():
    """Layer-major rank layout and sub-communicators"""
    comm = MPI.COMM_WORLD
    size = comm.Get_size()
    if size % 2 != 0:
        pytest.skip("Requires an even number of processes")
    grid = Grid3D(1, size // 2, 2, base_comm=comm)
    assert grid.zrank == comm.Get_rank() // (size // 2)
    assert grid.iam == comm.Get_rank() % (size // 2)
    assert (grid.myrow, grid.mycol) == (0, grid.iam)
    assert grid.comm2d.Get_size() == size // 2
    assert grid.comm2d.Get_rank() == grid.iam
    assert grid.zcomm.Get_size() == 2
    assert grid.zcomm.Get_rank() == grid.zrank
    assert grid.layered_comm.Get_rank() == 2 * grid.iam + grid.zrank
    # processes of a depth communicator share the 2-D position
    assert grid.zcomm.allgather(grid.iam) == [grid.iam] * 2
    grid.free()


@pytest.mark.mpi(min_size=2)
def test_range_offsets():
    """Offsets are the exclusive prefix sum in rank order"""
    comm = MPI.COMM_WORLD
    rank, size = comm.Get_rank(), comm.Get_size()
    # rank 1 owns nothing
    count = 0 if rank == 1 else rank + 2
    counts, displs = range_offsets(comm, count)
    expected = np.array([0 if r == 1 else r + 2 for r in range(size)])
    assert_array_equal(counts, expected)
    assert displs[0] == 0
    assert_array_equal(np.diff(displs), expected)
    assert displs[-1] == expected.sum()


@pytest.mark.mpi(min_size=2)
@pytest.mark.parametrize("dtype", [np.float32, np.float64, np.complex128, np.int64])
def test_allgather_ranges(dtype):
    """Global vector assembled from contiguous slices"""
    comm = MPI.COMM_WORLD
    rank, size = comm.Get_rank(), comm.Get_size()
    nglobal = 3 * size + 1
    base, extra = divmod(nglobal, size)
    start = rank * base + min(rank, extra)
    stop = start + base + (1 if rank < extra else 0)
    x = np.arange(nglobal).astype(dtype)
    y = allgather_ranges(comm, x[start:stop])
    assert y.dtype == dtype
    assert_array_equal(y, x)


@pytest.mark.mpi(min_size=2)
@pytest.mark.parametrize("op", [MPI.MAX, MPI.MIN])
def test_allreduce_elementwise_without_cuda_aware_mpi(monkeypatch, op):
    """MIN/MAX of device vectors are element-wise without CUDA-aware MPI"""
    # numpy stands in for the device module so that the object-mode branch runs
    monkeypatch.setattr(deps, "cuda_aware_mpi_enabled", False)
    monkeypatch.setattr(_mpi, "get_module", lambda engine: np)
    comm = MPI.COMM_WORLD
    rank, size = comm.Get_rank(), comm.Get_size()
    x = np.zeros(size)
    x[rank] = rank + 1.
    y = _mpi.mpi_allreduce(comm, x, engine="cupy", op=op)
    expected = np.arange(1., size + 1.) if op == MPI.MAX else np.zeros(size)
    assert_array_equal(y, expected)
