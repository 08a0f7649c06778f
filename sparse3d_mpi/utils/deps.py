__all__ = [
    "cuda_aware_mpi_enabled"
]

import os
from importlib import util
from typing import Optional


# error message at import of available package
def cuda_aware_mpi_import(message: Optional[str] = None) -> Optional[str]:
    cuda_aware_test = (
        # cupy must be present and the user must declare the MPI build as CUDA-aware
        util.find_spec("cupy") is not None and int(os.getenv("CUDA_AWARE_MPI_SPARSE3D", 0)) == 1
    )
    if cuda_aware_test:
        cuda_aware_message = None
    else:
        cuda_aware_message = (
            "cupy not installed or os.getenv('CUDA_AWARE_MPI_SPARSE3D') == 0. "
            f"In order to be able to use {message} with device buffers "
            "ensure 'os.getenv('CUDA_AWARE_MPI_SPARSE3D') == 1' and that "
            "mpi4py is linked against a CUDA-aware MPI installation"
        )
    return cuda_aware_message


cuda_aware_mpi_enabled: bool = (
    True if cuda_aware_mpi_import() is None else False
)
