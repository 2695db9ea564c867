from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from bitredict.config import DatabaseSettings
from bitredict.oracle.database.dbm import DBM
from bitredict.shared.errors import TransientError


class _Session:
    def __init__(self, exc=None):
        self.exc = exc

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def begin(self):
        return self

    async def execute(self, query, params):
        raise self.exc


def _dbm():
    engine = MagicMock()
    engine.url = "postgresql+asyncpg://oracle:secret@db:5432/bitredict"
    return DBM(DatabaseSettings(), engine=engine)


@pytest.mark.asyncio
async def test_raw_sql_is_rejected():
    with pytest.raises(TypeError):
        await _dbm().read("SELECT 1")


@pytest.mark.asyncio
async def test_write_requires_params():
    with pytest.raises(ValueError):
        await _dbm().write(text("DELETE FROM pools"))


@pytest.mark.asyncio
async def test_connection_loss_is_transient():
    dbm = _dbm()
    dbm.session_maker = lambda: _Session(OperationalError("SELECT 1", {}, ConnectionRefusedError("down")))

    with pytest.raises(TransientError):
        await dbm.read(text("SELECT 1"))
    with pytest.raises(TransientError):
        await dbm.write(text("UPDATE pools SET status = :s"), {"s": "active"})
