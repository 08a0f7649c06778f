__all__ = [
    "_prefix_displacements",
    "_pack_layer_blocks",
    "_unpack_layer_blocks",
]


import numpy as np
from pylops.utils.backend import get_array_module


def _prefix_displacements(counts) -> np.ndarray:
    r"""Exclusive prefix sum of ``counts``

    Returns an array of length ``len(counts) + 1`` such that
    ``disp[0] = 0`` and ``disp[k + 1] = disp[k] + counts[k]``; the last entry
    is therefore the total.

    Parameters
    ----------
    counts : :obj:`list` or :obj:`numpy.ndarray`
        Non-negative counts, one per rank.

    Returns
    -------
    disp : :obj:`numpy.ndarray`
        Displacements.
    """
    counts = np.asarray(counts, dtype=np.int64)
    disp = np.zeros(counts.size + 1, dtype=np.int64)
    np.cumsum(counts, out=disp[1:])
    return disp


def _unpack_layer_blocks(flat, row_counts, row_disp, nrhs):
    r"""Re-block a layer-major buffer into a column-major matrix

    After a variable-length gather, ``flat`` holds the compact column-major
    ``row_counts[i] x nrhs`` block of each layer one after the other. This
    routine places the block of layer ``i`` in rows
    ``[row_disp[i], row_disp[i + 1])`` of every column of a
    ``row_disp[-1] x nrhs`` Fortran-ordered matrix.

    Parameters
    ----------
    flat : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Layer-major buffer of size ``row_disp[-1] * nrhs``.
    row_counts : :obj:`numpy.ndarray`
        Number of rows contributed by each layer.
    row_disp : :obj:`numpy.ndarray`
        Row displacements of each layer (length ``len(row_counts) + 1``).
    nrhs : :obj:`int`
        Number of columns.

    Returns
    -------
    out : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Column-major matrix with leading dimension ``row_disp[-1]``.
    """
    ncp = get_array_module(flat)
    out = ncp.empty((int(row_disp[-1]), nrhs), dtype=flat.dtype, order="F")
    for i, nrows in enumerate(row_counts):
        rs, re = int(row_disp[i]), int(row_disp[i + 1])
        block = flat[nrhs * rs:nrhs * re]
        out[rs:re, :] = block.reshape((int(nrows), nrhs), order="F")
    return out


def _pack_layer_blocks(mat, row_counts, row_disp, nrhs):
    r"""Inverse of :func:`_unpack_layer_blocks`

    Parameters
    ----------
    mat : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Matrix of shape ``(row_disp[-1], nrhs)``.
    row_counts : :obj:`numpy.ndarray`
        Number of rows owned by each layer.
    row_disp : :obj:`numpy.ndarray`
        Row displacements of each layer.
    nrhs : :obj:`int`
        Number of columns.

    Returns
    -------
    flat : :obj:`numpy.ndarray` or :obj:`cupy.ndarray`
        Layer-major buffer, each layer block compact and column-major.
    """
    ncp = get_array_module(mat)
    flat = ncp.empty(int(row_disp[-1]) * nrhs, dtype=mat.dtype)
    for i in range(len(row_counts)):
        rs, re = int(row_disp[i]), int(row_disp[i + 1])
        flat[nrhs * rs:nrhs * re] = mat[rs:re, :].ravel(order="F")
    return flat
