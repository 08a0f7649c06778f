__all__ = ["partitiontest"]

from mpi4py import MPI

from sparse3d_mpi.RowBlockMatrix import RowBlockMatrix


def partitiontest(
    A: RowBlockMatrix,
    base_comm: MPI.Comm = MPI.COMM_WORLD,
    raiseerror: bool = True,
    verb: bool = False,
) -> bool:
    r"""Row partition test.

    Verify that the row ranges ``[fst_row, fst_row + m_loc)`` of all
    processes of ``base_comm`` tile ``[0, nrow)`` exactly once, in rank
    order. This is a collective call.

    Parameters
    ----------
    A : :obj:`sparse3d_mpi.RowBlockMatrix`
        Local rows of the matrix.
    base_comm : :obj:`mpi4py.MPI.Comm`, optional
        Communicator over which the rows are distributed.
    raiseerror : :obj:`bool`, optional
        Raise error or simply return ``False`` when the test fails
    verb : :obj:`bool`, optional
        Verbosity

    Returns
    -------
    passed : :obj:`bool`
        Passed flag, identical on all ranks.

    Raises
    ------
    AssertionError
        If the row ranges do not tile the rows of the matrix.

    """
    ranges = base_comm.allgather((A.fst_row, A.m_loc))
    expected = 0
    passed = True
    for fst_row, m_loc in ranges:
        if fst_row != expected:
            passed = False
            break
        expected += m_loc
    passed = passed and expected == A.nrow

    if (not passed and raiseerror) or verb:
        passed_status = "passed" if passed else "failed"
        msg = f"Partition test {passed_status}, ranges={ranges}, nrow={A.nrow}"
        if not passed and raiseerror:
            raise AssertionError(msg)
        elif base_comm.Get_rank() == 0:
            print(msg)

    return passed
