import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects import postgresql

from folder_graph.core.exceptions import ConflictError
from folder_graph.db.transaction import UnitOfWork
from folder_graph.repositories.folders import locking_select


class DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def driver_failure(sqlstate):
    return sa_exc.OperationalError("COMMIT", None, DriverError(sqlstate))


class FakeSession:
    def __init__(self, commit_error=None):
        self.commit_error = commit_error
        self.calls = []

    async def commit(self):
        self.calls.append("commit")
        if self.commit_error is not None:
            raise self.commit_error

    async def rollback(self):
        self.calls.append("rollback")

    async def close(self):
        self.calls.append("close")


@pytest.mark.parametrize("sqlstate", ["40P01", "40001"])
async def test_deadlock_on_commit_becomes_conflict(sqlstate):
    session = FakeSession(commit_error=driver_failure(sqlstate))
    ran = []

    async def hook():
        ran.append(True)

    with pytest.raises(ConflictError):
        async with UnitOfWork(lambda: session) as uow:
            uow.on_commit(hook)

    assert session.calls == ["commit", "rollback", "close"]
    assert ran == []


async def test_deadlock_inside_the_block_becomes_conflict():
    session = FakeSession()

    with pytest.raises(ConflictError) as exc_info:
        async with UnitOfWork(lambda: session):
            raise driver_failure("40P01")

    assert isinstance(exc_info.value.__cause__, sa_exc.OperationalError)
    assert session.calls == ["rollback", "close"]


async def test_other_database_errors_pass_through():
    session = FakeSession(commit_error=driver_failure("23505"))

    with pytest.raises(sa_exc.OperationalError):
        async with UnitOfWork(lambda: session):
            pass

    assert session.calls == ["commit", "rollback", "close"]


def test_folders_are_locked_in_id_order():
    sql = str(locking_select([3, 1]).compile(dialect=postgresql.dialect()))

    assert "ORDER BY folders.id" in sql
    assert sql.rstrip().endswith("FOR UPDATE")
