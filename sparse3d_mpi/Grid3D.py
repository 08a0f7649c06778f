__all__ = [
    "Grid3D",
]

from mpi4py import MPI


class Grid3D:
    r"""Layered process grid

    Arrange the processes of ``base_comm`` in a
    :math:`n_{prow} \times n_{pcol} \times n_{pdep}` grid made of
    :math:`n_{pdep}` replicas (layers) of a 2-D
    :math:`n_{prow} \times n_{pcol}` grid. Ranks are assigned layer by
    layer, so that rank :math:`r` sits on layer
    :math:`z = r \,//\, (n_{prow} n_{pcol})` with 2-D rank
    :math:`r \bmod (n_{prow} n_{pcol})`, laid out row-major in the 2-D grid.

    Parameters
    ----------
    nprow : :obj:`int`
        Number of process rows of each 2-D layer.
    npcol : :obj:`int`
        Number of process columns of each 2-D layer.
    npdep : :obj:`int`
        Number of layers (depth of the grid).
    base_comm : :obj:`mpi4py.MPI.Comm`, optional
        MPI Base Communicator. Defaults to ``mpi4py.MPI.COMM_WORLD``.

    Attributes
    ----------
    iam : :obj:`int`
        Rank within the 2-D layer.
    zrank : :obj:`int`
        Depth coordinate (layer index) of this process.
    myrow : :obj:`int`
        Process row within the 2-D layer.
    mycol : :obj:`int`
        Process column within the 2-D layer.
    comm2d : :obj:`mpi4py.MPI.Comm`
        Communicator of the processes of the same layer, ordered by ``iam``.
    zcomm : :obj:`mpi4py.MPI.Comm`
        Communicator of the processes sharing the same 2-D position across
        layers, ordered by ``zrank``.
    layered_comm : :obj:`mpi4py.MPI.Comm`
        Communicator of all processes ordered by 2-D rank first and layer
        second. Distributing contiguous rows over it gives every process of
        layer 0 a contiguous row range once the layers are gathered.

    Raises
    ------
    ValueError
        If the grid dimensions are not positive or do not match the size
        of ``base_comm``.

    """

    def __init__(self, nprow: int, npcol: int, npdep: int,
                 base_comm: MPI.Comm = MPI.COMM_WORLD):
        if min(nprow, npcol, npdep) < 1:
            raise ValueError(f"Grid dimensions must be positive, got "
                             f"({nprow}, {npcol}, {npdep})")
        size = base_comm.Get_size()
        if nprow * npcol * npdep != size:
            raise ValueError(f"Grid {nprow}x{npcol}x{npdep} does not match "
                             f"communicator size {size}")
        self.nprow, self.npcol, self.npdep = nprow, npcol, npdep
        self.base_comm = base_comm
        self.rank = base_comm.Get_rank()
        self.zrank, self.iam = divmod(self.rank, self.nprocs2d)
        self.myrow, self.mycol = divmod(self.iam, npcol)
        self.comm2d = base_comm.Split(color=self.zrank, key=self.iam)
        self.zcomm = base_comm.Split(color=self.iam, key=self.zrank)
        self.layered_comm = base_comm.Split(color=0, key=self.iam * npdep + self.zrank)

    @classmethod
    def from_size(cls, npdep: int, base_comm: MPI.Comm = MPI.COMM_WORLD) -> "Grid3D":
        """Grid of ``npdep`` layers, each a single row of processes"""
        size = base_comm.Get_size()
        if npdep < 1 or size % npdep != 0:
            raise ValueError(f"Communicator size {size} is not a multiple of npdep={npdep}")
        return cls(1, size // npdep, npdep, base_comm=base_comm)

    @property
    def nprocs2d(self) -> int:
        return self.nprow * self.npcol

    @property
    def is_coordinator(self) -> bool:
        """Whether this process belongs to layer 0"""
        return self.zrank == 0

    def free(self):
        """Release the communicators created by the grid"""
        self.comm2d.Free()
        self.zcomm.Free()
        self.layered_comm.Free()

    def __repr__(self):
        return (f"<Grid3D {self.nprow}x{self.npcol}x{self.npdep} rank={self.rank} "
                f"zrank={self.zrank} iam={self.iam}>")
