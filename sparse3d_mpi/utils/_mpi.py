__all__ = [
    "mpi_allreduce",
    "mpi_gatherv",
    "mpi_scatterv",
    "mpi_allgatherv",
    "range_offsets",
    "allgather_ranges",
]

from typing import Optional, Tuple

import numpy as np
from mpi4py import MPI
from pylops.utils import DTypeLike, NDArray
from pylops.utils.backend import get_module, to_numpy
from sparse3d_mpi.utils import deps
from sparse3d_mpi.utils._common import _prefix_displacements


def _mpi_type(buf):
    return MPI._typedict[buf.dtype.char]


def mpi_allreduce(base_comm: MPI.Comm,
                  send_buf, recv_buf=None,
                  engine: Optional[str] = "numpy",
                  op: MPI.Op = MPI.SUM) -> NDArray:
    """MPI_Allreduce/allreduce

    Dispatch allreduce routine based on type of input and availability of
    CUDA-Aware MPI

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    send_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        The data buffer from the local process to be reduced.
    recv_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`, optional
        The buffer to store the result of the reduction. If None,
        a new buffer will be allocated with the appropriate shape.
    engine : :obj:`str`, optional
        Engine used to store array (``numpy`` or ``cupy``)
    op : :obj:`mpi4py.MPI.Op`, optional
        The reduction operation to apply. Defaults to MPI.SUM.

    Returns
    -------
    recv_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        A buffer containing the result of the reduction, available
        on all ranks.

    """
    if deps.cuda_aware_mpi_enabled or engine == "numpy":
        ncp = get_module(engine)
        if recv_buf is None:
            recv_buf = ncp.zeros(send_buf.size, dtype=send_buf.dtype)
        base_comm.Allreduce(send_buf, recv_buf, op)
        return recv_buf
    else:
        # CuPy with non-CUDA-aware MPI
        if op != MPI.MIN and op != MPI.MAX:
            return base_comm.allreduce(send_buf, op)
        # object-mode MIN/MAX compares whole arrays, reduce element-wise on host
        host_buf = np.zeros(send_buf.size, dtype=send_buf.dtype)
        base_comm.Allreduce(to_numpy(send_buf), host_buf, op)
        ncp = get_module(engine)
        if recv_buf is None:
            return ncp.asarray(host_buf)
        recv_buf[:] = ncp.asarray(host_buf)
        return recv_buf


def mpi_gatherv(base_comm: MPI.Comm,
                send_buf, counts, displs, root: int = 0,
                engine: Optional[str] = "numpy") -> Optional[NDArray]:
    """MPI_Gatherv/gather

    Gather variable-length buffers into a single buffer on ``root``,
    ordered by rank.

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    send_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Contiguous 1-D buffer to be sent by this rank.
    counts : :obj:`numpy.ndarray`
        Number of elements sent by each rank. Only read on ``root``.
    displs : :obj:`numpy.ndarray`
        Offset of each rank's contribution in the receive buffer
        (length ``size + 1``, last entry is the total). Only read on ``root``.
    root : :obj:`int`, optional
        Rank receiving the data.
    engine : :obj:`str`, optional
        Engine used to store array (``numpy`` or ``cupy``)

    Returns
    -------
    recv_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Gathered buffer on ``root``, ``None`` on all other ranks.

    """
    rank = base_comm.Get_rank()
    if deps.cuda_aware_mpi_enabled or engine == "numpy":
        if rank == root:
            ncp = get_module(engine)
            recv_buf = ncp.empty(int(displs[-1]), dtype=send_buf.dtype)
            base_comm.Gatherv(send_buf,
                              [recv_buf, [int(c) for c in counts],
                               [int(d) for d in displs[:-1]], _mpi_type(recv_buf)],
                              root=root)
            return recv_buf
        base_comm.Gatherv(send_buf, None, root=root)
        return None
    else:
        # CuPy with non-CUDA-aware MPI
        chunks = base_comm.gather(send_buf, root=root)
        if rank == root:
            ncp = get_module(engine)
            return ncp.concatenate([ncp.asarray(chunk) for chunk in chunks])
        return None


def mpi_scatterv(base_comm: MPI.Comm,
                 send_buf, counts, displs, count: int,
                 dtype: DTypeLike, root: int = 0,
                 engine: Optional[str] = "numpy") -> NDArray:
    """MPI_Scatterv/scatter

    Scatter variable-length chunks of a buffer held by ``root``.

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    send_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Contiguous 1-D buffer to be scattered. Only read on ``root``.
    counts : :obj:`numpy.ndarray`
        Number of elements received by each rank. Only read on ``root``.
    displs : :obj:`numpy.ndarray`
        Offset of each rank's chunk in ``send_buf`` (length ``size + 1``).
        Only read on ``root``.
    count : :obj:`int`
        Number of elements received by this rank.
    dtype : :obj:`str`
        Type of elements of the receive buffer.
    root : :obj:`int`, optional
        Rank holding the data.
    engine : :obj:`str`, optional
        Engine used to store array (``numpy`` or ``cupy``)

    Returns
    -------
    recv_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Chunk of ``send_buf`` owned by this rank.

    """
    rank = base_comm.Get_rank()
    ncp = get_module(engine)
    if deps.cuda_aware_mpi_enabled or engine == "numpy":
        recv_buf = ncp.empty(count, dtype=dtype)
        if rank == root:
            base_comm.Scatterv([send_buf, [int(c) for c in counts],
                                [int(d) for d in displs[:-1]], _mpi_type(send_buf)],
                               recv_buf, root=root)
        else:
            base_comm.Scatterv(None, recv_buf, root=root)
        return recv_buf
    else:
        # CuPy with non-CUDA-aware MPI
        chunks = None
        if rank == root:
            chunks = [send_buf[int(displs[i]):int(displs[i + 1])]
                      for i in range(len(counts))]
        return ncp.asarray(base_comm.scatter(chunks, root=root))


def mpi_allgatherv(base_comm: MPI.Comm,
                   send_buf, counts, displs,
                   engine: Optional[str] = "numpy") -> NDArray:
    """MPI_Allgatherv/allgather

    Variable-length gather whose result is available on every rank.

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    send_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Contiguous 1-D buffer to be sent by this rank.
    counts : :obj:`numpy.ndarray`
        Number of elements sent by each rank.
    displs : :obj:`numpy.ndarray`
        Offset of each rank's contribution (length ``size + 1``).
    engine : :obj:`str`, optional
        Engine used to store array (``numpy`` or ``cupy``)

    Returns
    -------
    recv_buf : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Concatenation of all contributions in rank order.

    """
    ncp = get_module(engine)
    if deps.cuda_aware_mpi_enabled or engine == "numpy":
        recv_buf = ncp.empty(int(displs[-1]), dtype=send_buf.dtype)
        base_comm.Allgatherv(send_buf,
                             [recv_buf, [int(c) for c in counts],
                              [int(d) for d in displs[:-1]], _mpi_type(recv_buf)])
        return recv_buf
    else:
        # CuPy with non-CUDA-aware MPI
        chunks = base_comm.allgather(send_buf)
        return ncp.concatenate([ncp.asarray(chunk) for chunk in chunks])


def range_offsets(base_comm: MPI.Comm, count: int) -> Tuple[np.ndarray, np.ndarray]:
    r"""Contiguous ranges owned by each rank

    Every rank contributes the length of the contiguous range it owns; the
    ranges are laid out one after the other in rank order.

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    count : :obj:`int`
        Length of the range owned by this rank.

    Returns
    -------
    counts : :obj:`numpy.ndarray`
        Length of the range of each rank.
    displs : :obj:`numpy.ndarray`
        Start of the range of each rank (exclusive prefix sum of ``counts``),
        with the total appended as last element.

    """
    counts = np.asarray(base_comm.allgather(int(count)), dtype=np.int64)
    return counts, _prefix_displacements(counts)


def allgather_ranges(base_comm: MPI.Comm, local_array,
                     engine: Optional[str] = "numpy") -> NDArray:
    r"""Assemble a global vector from contiguous per-rank ranges

    Each rank owns the contiguous slice ``local_array`` of a global vector;
    the slices are concatenated in rank order and the full vector is
    returned to every rank.

    Parameters
    ----------
    base_comm : :obj:`MPI.Comm`
        Base MPI Communicator.
    local_array : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Slice owned by this rank.
    engine : :obj:`str`, optional
        Engine used to store array (``numpy`` or ``cupy``)

    Returns
    -------
    global_array : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Global vector, identical on all ranks.

    """
    counts, displs = range_offsets(base_comm, local_array.size)
    return mpi_allgatherv(base_comm, local_array.ravel(), counts, displs, engine=engine)
