__all__ = [
    "RADIX",
    "real_dtype",
    "safe_min",
    "safe_max",
]

import numpy as np
from pylops.utils import DTypeLike

# base of the floating point representation (IEEE 754)
RADIX = 2


def real_dtype(dtype: DTypeLike) -> np.dtype:
    """Real counterpart of a (possibly complex) floating point dtype

    Parameters
    ----------
    dtype : :obj:`str` or :obj:`numpy.dtype`
        Type of the matrix values.

    Returns
    -------
    rdtype : :obj:`numpy.dtype`
        ``float32`` for single precision types, ``float64`` otherwise.

    """
    dtype = np.dtype(dtype)
    if dtype in (np.float32, np.complex64):
        return np.dtype(np.float32)
    return np.dtype(np.float64)


def safe_min(dtype: DTypeLike) -> float:
    r"""Smallest safe magnitude

    Smallest positive number such that its reciprocal does not overflow
    (LAPACK's ``sfmin``).

    Parameters
    ----------
    dtype : :obj:`str` or :obj:`numpy.dtype`
        Type of the matrix values.

    Returns
    -------
    smlnum : :obj:`float`
        Safe minimum for the real counterpart of ``dtype``.

    """
    finfo = np.finfo(real_dtype(dtype))
    sfmin = finfo.tiny
    small = 1. / finfo.max
    if small >= sfmin:
        sfmin = small * (1. + finfo.eps)
    return float(sfmin)


def safe_max(dtype: DTypeLike) -> float:
    """Largest safe magnitude, reciprocal of :func:`safe_min`"""
    return 1. / safe_min(dtype)
