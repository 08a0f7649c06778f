"""Test the power-of-radix equilibration
    Designed to run with n processes
    $ mpiexec -n 4 pytest test_equilibrate.py --with-mpi
"""
import logging

import numpy as np
from mpi4py import MPI
import pytest
import scipy.sparse as sp
from numpy.testing import assert_allclose, assert_array_equal

from sparse3d_mpi import RowBlockMatrix
from sparse3d_mpi.scaling import EquilibrationResult, equilibrate, round_to_radix
from sparse3d_mpi.utils import safe_min

par1 = {'nrow': 40, 'ncol': 40, 'dtype': np.float64}
par1j = {'nrow': 40, 'ncol': 40, 'dtype': np.complex128}
par2 = {'nrow': 33, 'ncol': 20, 'dtype': np.float64}
par3 = {'nrow': 25, 'ncol': 25, 'dtype': np.float32}


def _global_matrix(nrow, ncol, dtype, seed=3):
    rng = np.random.RandomState(seed)
    A = sp.random(nrow, ncol, density=0.3, format="csr", random_state=rng)
    # entries spanning many orders of magnitude, no empty row or column
    A.data = A.data * 10. ** rng.randint(-8, 8, A.data.size)
    A = A + sp.csr_matrix(
        (np.full(ncol, 0.7), (np.arange(ncol) % nrow, np.arange(ncol))),
        shape=(nrow, ncol))
    A = A + sp.csr_matrix(
        (np.full(nrow, 3.), (np.arange(nrow), np.arange(nrow) % ncol)),
        shape=(nrow, ncol))
    if np.issubdtype(dtype, np.complexfloating):
        A = A - 2j * sp.eye(nrow, ncol)
    return sp.csr_matrix(A, dtype=dtype)


def _reference(Aglob):
    """Serial power-of-two scale factors"""
    absA = abs(Aglob).tocsr()
    rmax = absA.max(axis=1).toarray().ravel()
    r = 2. ** np.floor(np.log2(rmax))
    amax = r.max()
    rowcnd = r.min() / r.max()
    r = 1. / r
    cmax = (sp.diags(r) @ absA).max(axis=0).toarray().ravel()
    c = 2. ** np.ceil(np.log2(cmax))
    colcnd = c.min() / c.max()
    return r, 1. / c, rowcnd, colcnd, amax


def _is_power_of_two(x):
    mantissa, _ = np.frexp(x)
    return np.all(mantissa == 0.5)


@pytest.mark.mpi(min_size=2)
@pytest.mark.parametrize("par", [(par1), (par1j), (par2), (par3)])
def test_equilibrate(par):
    """Scale factors match the serial computation on every rank"""
    comm = MPI.COMM_WORLD
    Aglob = _global_matrix(par['nrow'], par['ncol'], par['dtype'])
    A = RowBlockMatrix.from_global(Aglob, base_comm=comm)
    result = equilibrate(A, comm)
    assert isinstance(result, EquilibrationResult)
    assert result.info == 0
    assert not result.singular
    assert result.r.shape == (par['nrow'],)
    assert result.c.shape == (par['ncol'],)
    assert not np.iscomplexobj(result.r)
    assert _is_power_of_two(result.r)
    assert _is_power_of_two(result.c)

    r, c, rowcnd, colcnd, amax = _reference(Aglob.astype(np.complex128)
                                            if np.iscomplexobj(Aglob)
                                            else Aglob.astype(np.float64))
    if par['dtype'] == np.float32:
        assert_allclose(result.r, r, rtol=1e-6)
        assert_allclose(result.c, c, rtol=1e-6)
    else:
        assert_array_equal(result.r, r)
        assert_array_equal(result.c, c)
    assert_allclose(result.rowcnd, rowcnd, rtol=1e-6)
    assert_allclose(result.colcnd, colcnd, rtol=1e-6)
    assert_allclose(result.amax, amax, rtol=1e-6)

    # no entry of the scaled matrix exceeds 1
    As = sp.diags(result.r.astype(np.float64)) @ abs(Aglob).astype(np.float64) \
        @ sp.diags(result.c.astype(np.float64))
    assert As.max() <= 1.

    # all ranks hold the same global factors
    gathered = comm.allgather(result.r)
    for r_rank in gathered:
        assert_array_equal(r_rank, result.r)


@pytest.mark.mpi(min_size=2)
def test_equilibrate_zero_row():
    """An empty row is reported with its 1-based index on every rank"""
    comm = MPI.COMM_WORLD
    nrow = 4 * comm.Get_size()
    Aglob = sp.lil_matrix(_global_matrix(nrow, nrow, np.float64))
    Aglob[2, :] = 0.
    Aglob = sp.csr_matrix(Aglob)
    Aglob.eliminate_zeros()
    A = RowBlockMatrix.from_global(Aglob, base_comm=comm)
    result = equilibrate(A, comm)
    assert result.info == 3
    assert result.singular
    assert result.r[2] == 0.
    assert np.all(result.c == 0.)
    assert comm.allgather(result.info) == [3] * comm.Get_size()


@pytest.mark.mpi(min_size=2)
def test_equilibrate_explicit_zero_row():
    """Stored zeros do not count as non-zero entries"""
    comm = MPI.COMM_WORLD
    nrow = 3 * comm.Get_size()
    Aglob = _global_matrix(nrow, nrow, np.float64)
    Aglob.data[Aglob.indptr[nrow - 1]:Aglob.indptr[nrow]] = 0.
    A = RowBlockMatrix.from_global(Aglob, base_comm=comm)
    result = equilibrate(A, comm)
    assert result.info == nrow


@pytest.mark.mpi(min_size=2)
def test_equilibrate_zero_column():
    """An empty column is reported after the row indices"""
    comm = MPI.COMM_WORLD
    nrow, ncol = 5 * comm.Get_size(), 12
    Aglob = sp.lil_matrix(_global_matrix(nrow, ncol, np.float64))
    Aglob[:, 7] = 0.
    Aglob[:, 9] = 0.
    Aglob[:, 0] = 1.
    Aglob = sp.csr_matrix(Aglob)
    Aglob.eliminate_zeros()
    A = RowBlockMatrix.from_global(Aglob, base_comm=comm)
    result = equilibrate(A, comm)
    assert result.info == nrow + 7 + 1
    assert result.r.shape == (nrow,)
    assert _is_power_of_two(result.r)
    assert result.c[7] == 0.


def test_equilibrate_serial():
    """Single process with a diagonal matrix"""
    d = np.array([1., 3., 0.25, 1000., 2. ** -20])
    A = RowBlockMatrix.from_scipy(sp.diags(d, format="csr"), 0, shape=(5, 5))
    result = equilibrate(A, MPI.COMM_SELF)
    expected = 1. / np.array([1., 2., 0.25, 512., 2. ** -20])
    assert result.info == 0
    assert_array_equal(result.r, expected)
    # row-scaled diagonal is [1, 1.5, 1, 1000 / 512, 1], covered by [1, 2, 1, 2, 1]
    assert_array_equal(result.c, np.array([1., 0.5, 1., 0.5, 1.]))
    assert result.amax == 512.
    assert result.rowcnd == 2. ** -20 / 512.
    assert result.colcnd == 0.5


@pytest.mark.parametrize("a01, c1", [(0.3, 2.), (0.5, 2.), (0.2, 4.), (1., 1.)])
def test_equilibrate_small_column(a01, c1):
    """Column maxima below 1 are covered by the next power of the radix"""
    Aglob = sp.csr_matrix(np.array([[1., a01], [1., 0.]]))
    A = RowBlockMatrix.from_scipy(Aglob, 0, shape=(2, 2))
    result = equilibrate(A, MPI.COMM_SELF)
    assert result.info == 0
    assert_array_equal(result.r, [1., 1.])
    assert_array_equal(result.c, [1., c1])
    assert a01 * result.c[1] <= 1.
    assert result.colcnd == 1. / c1


def test_equilibrate_complex_warning(caplog):
    """Complex matrices get real scale factors and a warning"""
    A = RowBlockMatrix.from_scipy(sp.diags([1. + 1j, 2j], format="csr"), 0,
                                  shape=(2, 2))
    with caplog.at_level(logging.WARNING):
        result = equilibrate(A, MPI.COMM_SELF)
    assert result.r.dtype == np.float64
    assert any("complex" in record.getMessage() for record in caplog.records)


def test_equilibrate_empty():
    """Quick return for empty matrices"""
    A = RowBlockMatrix(nzval=np.zeros(0), colind=np.zeros(0, dtype=np.int64),
                       rowptr=np.zeros(1, dtype=np.int64), fst_row=0, shape=(0, 4))
    result = equilibrate(A, MPI.COMM_SELF)
    assert result.info == 0
    assert result.rowcnd == 1.
    assert result.colcnd == 1.
    assert result.amax == 0.
    assert result.r.size == 0
    assert result.c.size == 4


def test_equilibrate_radix():
    """Scale factors are powers of the requested radix"""
    d = np.array([5., 150., 0.02, 99.])
    A = RowBlockMatrix.from_scipy(sp.diags(d, format="csr"), 0, shape=(4, 4))
    result = equilibrate(A, MPI.COMM_SELF, radix=10)
    assert result.info == 0
    assert_allclose(result.r, 1. / np.array([1., 100., 0.01, 10.]))
    assert_allclose(result.amax, 100.)


def test_equilibrate_invalid():
    """Invalid arguments raise before any communication"""
    A = RowBlockMatrix.from_scipy(sp.eye(3, format="csr"), 0, shape=(3, 3))
    with pytest.raises(ValueError):
        equilibrate(A, MPI.COMM_SELF, radix=1)
    with pytest.raises(ValueError):
        equilibrate(A, MPI.COMM_SELF, radix=2.5)
    with pytest.raises(TypeError):
        equilibrate(sp.eye(3, format="csr"), MPI.COMM_SELF)


def test_round_to_radix_binary_boundaries():
    """Exact exponent extraction at representation boundaries"""
    tiny = np.finfo(np.float64).tiny
    x = np.array([0., 1., 2., 4., np.nextafter(4., 0.), np.nextafter(4., 8.),
                  0.75, 2. ** -1022, tiny / 4, 5e-324, np.finfo(np.float64).max])
    expected = np.array([0., 1., 2., 4., 2., 4., 0.5, 2. ** -1022, tiny / 4,
                         5e-324, 2. ** 1023])
    assert_array_equal(round_to_radix(x, 2), expected)

    x32 = np.array([3., 0.125, np.nextafter(np.float32(0.125), np.float32(0))],
                   dtype=np.float32)
    y32 = round_to_radix(x32, 2)
    assert y32.dtype == np.float32
    assert_array_equal(y32, np.array([2., 0.125, 0.0625], dtype=np.float32))


def test_round_to_radix_decimal():
    """Non-binary radix rounds down to a power of the radix"""
    x = np.array([0., 1000., np.nextafter(1000., 0.), 1e-3, 7., 1e10])
    expected = np.array([0., 1000., 100., 1e-3, 1., 1e10])
    assert_allclose(round_to_radix(x, 10), expected, rtol=1e-12)
    y = round_to_radix(np.array([16., 255., 256., 1. / 16]), 16)
    assert_allclose(y, [16., 16., 256., 1. / 16], rtol=1e-12)


def test_round_to_radix_cover():
    """Covering power is the smallest power not below the value"""
    x = np.array([0., 1., 0.3, 0.5, np.nextafter(0.5, 1.), 1.5, 4.,
                  np.nextafter(4., 8.), 2. ** -1074])
    expected = np.array([0., 1., 0.5, 0.5, 1., 2., 4., 8., 2. ** -1074])
    assert_array_equal(round_to_radix(x, 2, cover=True), expected)

    x = np.array([0., 1000., np.nextafter(1000., 2000.), 7., 1e-3, 0.3])
    expected = np.array([0., 1000., 1e4, 10., 1e-3, 1.])
    assert_allclose(round_to_radix(x, 10, cover=True), expected, rtol=1e-12)


def test_safe_min():
    """Reciprocal of the safe minimum does not overflow"""
    for dtype in (np.float32, np.float64, np.complex64, np.complex128):
        smlnum = safe_min(dtype)
        assert smlnum > 0.
        assert np.isfinite(1. / smlnum)
