__all__ = [
    "EquilibrationResult",
    "round_to_radix",
    "equilibrate",
]

import logging
from typing import NamedTuple, Optional

import numpy as np
from mpi4py import MPI
from pylops.utils import NDArray
from pylops.utils.backend import get_array_module, get_module_name

from sparse3d_mpi.RowBlockMatrix import RowBlockMatrix
from sparse3d_mpi.utils._mpi import allgather_ranges, mpi_allreduce
from sparse3d_mpi.utils.machine import RADIX, real_dtype, safe_min


class EquilibrationResult(NamedTuple):
    r"""Outcome of :func:`equilibrate`

    Attributes
    ----------
    r : :obj:`numpy.ndarray`
        Row scale factors, one per global row.
    c : :obj:`numpy.ndarray`
        Column scale factors, one per global column.
    rowcnd : :obj:`float`
        Ratio of the smallest to the largest row scale factor.
    colcnd : :obj:`float`
        Ratio of the smallest to the largest column scale factor.
    amax : :obj:`float`
        Largest row scale factor before inversion, i.e. the largest matrix
        entry rounded down to a power of the radix.
    info : :obj:`int`
        ``0`` on success; ``i`` with ``1 <= i <= nrow`` if row ``i - 1`` is
        exactly zero; ``nrow + j + 1`` if column ``j`` is exactly zero.

    """
    r: NDArray
    c: NDArray
    rowcnd: float
    colcnd: float
    amax: float
    info: int

    @property
    def singular(self) -> bool:
        return self.info > 0


def round_to_radix(x: NDArray, radix: int = RADIX, cover: bool = False) -> NDArray:
    r"""Round positive values to a power of the radix

    Every positive entry :math:`x` is replaced by :math:`\beta^k` with
    :math:`k = \lfloor \log_\beta x \rfloor`, so that
    :math:`\beta^k \le x < \beta^{k+1}`. With ``cover=True`` the
    smallest power not below :math:`x` is used instead,
    :math:`k = \lceil \log_\beta x \rceil` and
    :math:`\beta^{k-1} < x \le \beta^k`. Zeros are left untouched.

    Parameters
    ----------
    x : :obj:`numpy.ndarray`
        Non-negative real values.
    radix : :obj:`int`, optional
        Base :math:`\beta` of the powers.
    cover : :obj:`bool`, optional
        Round up to the covering power instead of down.

    Returns
    -------
    y : :obj:`numpy.ndarray`
        Rounded values, same dtype as ``x``.

    Notes
    -----
    For ``radix=2`` the exponent is read from the floating point
    representation with ``frexp``, which is exact. For other radices
    :math:`k` is estimated with logarithms and corrected by one step
    in either direction when the estimate is off at a representation
    boundary.

    """
    ncp = get_array_module(x)
    y = ncp.zeros_like(x)
    pos = x > 0
    xp = x[pos]
    if radix == 2:
        # x = m * 2**e with 0.5 <= m < 1
        m, e = ncp.frexp(xp)
        if cover:
            e = ncp.where(m == 0.5, e - 1, e)
        else:
            e = e - 1
        y[pos] = ncp.ldexp(ncp.ones_like(xp), e)
    elif cover:
        k = ncp.ceil(ncp.log(xp) / np.log(radix))
        p = ncp.power(float(radix), k).astype(x.dtype)
        k = ncp.where(p < xp, k + 1, k)
        k = ncp.where(p / radix >= xp, k - 1, k)
        y[pos] = ncp.power(float(radix), k).astype(x.dtype)
    else:
        k = ncp.floor(ncp.log(xp) / np.log(radix))
        p = ncp.power(float(radix), k).astype(x.dtype)
        k = ncp.where(p > xp, k - 1, k)
        k = ncp.where(p * radix <= xp, k + 1, k)
        y[pos] = ncp.power(float(radix), k).astype(x.dtype)
    return y


def _scatter_max(out, index, values):
    """``out[index[i]] = max(out[index[i]], values[i])`` with repeated indices"""
    if get_module_name(get_array_module(out)) == "cupy":
        import cupyx
        cupyx.scatter_max(out, index, values)
    else:
        np.maximum.at(out, index, values)


def _invert_clamped(s, smlnum, bignum):
    ncp = get_array_module(s)
    return 1. / ncp.minimum(ncp.maximum(s, smlnum), bignum)


def equilibrate(A: RowBlockMatrix,
                base_comm: MPI.Comm = MPI.COMM_WORLD,
                radix: Optional[int] = None) -> EquilibrationResult:
    r"""Power-of-radix row and column scalings of a row-distributed matrix

    Compute row scale factors :math:`\mathbf{r}` and column scale factors
    :math:`\mathbf{c}` intended to equilibrate :math:`\mathbf{A}`, such
    that the largest entry in each row and column of
    :math:`B_{ij} = r_i A_{ij} c_j` has magnitude close to 1. The scale
    factors are restricted to powers of the radix between the smallest
    and the largest safe numbers, so that scaling introduces no rounding
    error.

    This is a collective call over ``base_comm``, the communicator over
    which the rows of ``A`` are distributed (the 2-D grid).

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local rows of the matrix.
    base_comm : :obj:`mpi4py.MPI.Comm`, optional
        Communicator over which the rows are distributed.
        Defaults to ``mpi4py.MPI.COMM_WORLD``.
    radix : :obj:`int`, optional
        Base of the scale factors. Defaults to the machine radix.

    Returns
    -------
    result : :obj:`sparse3d_mpi.scaling.EquilibrationResult`
        Scale factors, condition estimates and status, identical on every
        process. When a zero row is found the column pass is skipped,
        ``c`` is returned as zeros and ``r`` holds the row maxima rounded
        to powers of the radix, not inverted (zero for the empty rows).

    Raises
    ------
    TypeError
        If ``A`` is not a :obj:`sparse3d_mpi.RowBlockMatrix`.
    ValueError
        If ``radix`` is not an integer larger than 1.

    Notes
    -----
    The row pass computes for every local row the largest magnitude rounded
    down to a power of the radix; global extrema are then obtained with two
    reductions. After inversion, the column pass accumulates
    :math:`\max_i |A_{ij}| r_i` over the local rows for every global column,
    rounds it up to the covering power of the radix and combines the
    full-length vectors with an element-wise maximum reduction, so that no
    entry of :math:`\mathbf{D}_r \mathbf{A} \mathbf{D}_c` exceeds 1 in
    magnitude. Finally, the local row
    factors are gathered so that every process holds the whole
    :math:`\mathbf{r}`.

    """
    if not isinstance(A, RowBlockMatrix):
        raise TypeError(f"A must be a RowBlockMatrix, got {type(A).__name__}")
    radix = RADIX if radix is None else radix
    if isinstance(radix, bool) or not isinstance(radix, (int, np.integer)) or radix < 2:
        raise ValueError(f"radix must be an integer larger than 1, got {radix!r}")

    ncp = get_array_module(A.nzval)
    engine = A.engine
    rdtype = real_dtype(A.dtype)
    nrow, ncol = A.shape
    m_loc = A.m_loc

    # quick return
    if nrow == 0 or ncol == 0:
        return EquilibrationResult(r=ncp.zeros(nrow, dtype=rdtype),
                                   c=ncp.zeros(ncol, dtype=rdtype),
                                   rowcnd=1., colcnd=1., amax=0., info=0)

    if ncp.iscomplexobj(A.nzval) and base_comm.Get_rank() == 0:
        logging.warning("Matrix A is a complex object, scale factors cast to %s"
                        % np.dtype(rdtype))

    smlnum = safe_min(rdtype)
    bignum = 1. / smlnum
    absval = ncp.abs(A.nzval).astype(rdtype)
    # local row of each non-zero
    rows = ncp.searchsorted(A.rowptr, ncp.arange(A.nnz_loc), side="right") - 1

    # largest magnitude in each local row
    r_loc = ncp.zeros(m_loc, dtype=rdtype)
    if A.nnz_loc > 0:
        _scatter_max(r_loc, rows, absval)
    r_loc = round_to_radix(r_loc, radix)

    rcmax = float(r_loc.max()) if m_loc > 0 else 0.
    rcmin = float(r_loc.min()) if m_loc > 0 else bignum
    rcmax = float(mpi_allreduce(base_comm, ncp.array([rcmax], dtype=rdtype),
                                engine=engine, op=MPI.MAX)[0])
    rcmin = float(mpi_allreduce(base_comm, ncp.array([rcmin], dtype=rdtype),
                                engine=engine, op=MPI.MIN)[0])
    amax = rcmax

    if rcmin == 0.:
        zero_rows = ncp.flatnonzero(r_loc == 0.)
        first = A.fst_row + int(zero_rows[0]) if zero_rows.size > 0 else nrow
        first = int(mpi_allreduce(base_comm, ncp.array([first], dtype=np.int64),
                                  engine=engine, op=MPI.MIN)[0])
        if base_comm.Get_rank() == 0:
            logging.warning("Row %d of the matrix is exactly zero" % first)
        r = allgather_ranges(base_comm, r_loc, engine=engine)
        return EquilibrationResult(r=r, c=ncp.zeros(ncol, dtype=rdtype),
                                   rowcnd=0., colcnd=0., amax=amax, info=first + 1)

    r_loc = _invert_clamped(r_loc, smlnum, bignum)
    rowcnd = max(rcmin, smlnum) / min(rcmax, bignum)

    # largest scaled magnitude in each column, from the local rows
    c = ncp.zeros(ncol, dtype=rdtype)
    if A.nnz_loc > 0:
        _scatter_max(c, A.colind, absval * r_loc[rows])
    c = mpi_allreduce(base_comm, round_to_radix(c, radix, cover=True),
                      engine=engine, op=MPI.MAX)

    cmax, cmin = float(c.max()), float(c.min())
    if cmin == 0.:
        first = int(ncp.flatnonzero(c == 0.)[0])
        if base_comm.Get_rank() == 0:
            logging.warning("Column %d of the matrix is exactly zero" % first)
        r = allgather_ranges(base_comm, r_loc, engine=engine)
        return EquilibrationResult(r=r, c=c, rowcnd=rowcnd, colcnd=0.,
                                   amax=amax, info=nrow + first + 1)

    c = _invert_clamped(c, smlnum, bignum)
    colcnd = max(cmin, smlnum) / min(cmax, bignum)

    r = allgather_ranges(base_comm, r_loc, engine=engine)
    return EquilibrationResult(r=r, c=c, rowcnd=rowcnd, colcnd=colcnd,
                               amax=amax, info=0)
