from .machine import *
from ._mpi import allgather_ranges, range_offsets
from .partitiontest import *
