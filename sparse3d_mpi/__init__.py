from .RowBlockMatrix import DenseBlock, RowBlockMatrix, row_split
from .Grid3D import Grid3D
from .redistribution import *
from .scaling import *
from . import (
    redistribution,
    scaling,
    plotting
)
from .plotting.plotting import *

try:
    from .version import version as __version__
except ImportError:
    # If it was not installed, then we don't know the version. We could throw a
    # warning here, but this case *should* be rare. sparse3d_mpi should be
    # installed properly!
    from datetime import datetime

    __version__ = "unknown-" + datetime.today().strftime("%Y%m%d")
