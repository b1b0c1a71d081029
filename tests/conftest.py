"""
py.test configuration
"""
import pytest
import pytest_asyncio

from asyncstorm import DatabaseInterface


@pytest_asyncio.fixture
async def db() -> DatabaseInterface:
    # a fresh in-memory database for every test
    iface = DatabaseInterface(dsn="sqlite3:///:memory:")
    await iface.connect()
    yield iface
    await iface.close()


@pytest.fixture
def executed(db: DatabaseInterface, monkeypatch) -> list:
    """
    Records every call to ``db.execute``, as a tuple of the statements passed.
    """
    calls = []
    execute = db.execute

    async def recording_execute(*statements):
        calls.append(statements)
        return await execute(*statements)

    monkeypatch.setattr(db, "execute", recording_execute)
    return calls
