"""
Connection Pool Tests

The SQLAlchemy engine is replaced by a mock; these tests check the SQL and
parameters handed to it and the pool's own guards.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError, ProgrammingError

from campus_gateway.config import Settings
from campus_gateway.core.errors import RestrictedWriteForbidden
from campus_gateway.db.pool import ConnectionPool, build_odbc_connect, is_connection_error
from campus_gateway.db.profiles import CallerClass, CredentialResolver


def make_engine(rows=None):
    """Mock AsyncEngine whose connections return `rows` for any statement."""
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows or []
    result.rowcount = 1

    conn = MagicMock()
    conn.execute = AsyncMock(return_value=result)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=conn)
    context.__aexit__ = AsyncMock(return_value=False)

    engine = MagicMock()
    engine.connect.return_value = context
    engine.begin.return_value = context
    engine.dispose = AsyncMock()
    return engine, conn


def executed_sql(conn) -> str:
    clause = conn.execute.await_args.args[0]
    return str(clause)


class TestOdbcConnectString:

    def test_named_instance(self, resolver, test_settings):
        profile = resolver.resolve("HOST\\INSTANCE1", CallerClass.STAFF)

        odbc = build_odbc_connect(profile, test_settings)

        assert "SERVER=HOST\\INSTANCE1" in odbc
        assert "DATABASE=QLDSV_TC" in odbc
        assert "UID=HTKN" in odbc
        assert "PWD=staff-pw" in odbc
        assert "Encrypt=no" in odbc
        assert "TrustServerCertificate=yes" in odbc
        assert odbc.startswith("DRIVER={ODBC Driver 18 for SQL Server};")

    def test_special_characters_are_brace_quoted(self, test_settings):
        cfg = Settings(**{**test_settings.model_dump(), "staff_secret": "p;w}d"})
        profile = CredentialResolver(cfg).resolve("MSI", CallerClass.STAFF)

        odbc = build_odbc_connect(profile, cfg)

        assert "PWD={p;w}}d}" in odbc


class TestConnectionErrors:

    def test_operational_error(self):
        assert is_connection_error(OperationalError("SELECT 1", {}, Exception("gone")))

    def test_invalidated_dbapi_error(self):
        err = DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)
        assert is_connection_error(err)

    def test_statement_error(self):
        assert not is_connection_error(ProgrammingError("SELECT x", {}, Exception("bad column")))
        assert not is_connection_error(ValueError("bad"))

    def test_timeouts(self):
        assert is_connection_error(asyncio.TimeoutError())
        assert is_connection_error(ConnectionResetError())


class TestConnectionPool:

    async def test_fetch_all_returns_dicts(self):
        engine, conn = make_engine([{"BRANCH_NAME": "IT Department"}])
        pool = ConnectionPool(engine, CallerClass.STAFF, "Server: MSI")

        rows = await pool.fetch_all("SELECT BRANCH_NAME FROM VIEW_FRAGMENT_LIST")

        assert rows == [{"BRANCH_NAME": "IT Department"}]
        assert conn.execute.await_args.args[1] == {}

    async def test_call_procedure_binds_named_parameters(self):
        engine, conn = make_engine()
        pool = ConnectionPool(engine, CallerClass.STAFF, "Server: MSI")

        await pool.call_procedure("SP_LOGIN_INFO", {"LoginName": "htkn_user", "UserRole": "LECTURER"})

        assert executed_sql(conn) == "EXEC SP_LOGIN_INFO @LoginName = :LoginName, @UserRole = :UserRole"
        assert conn.execute.await_args.args[1] == {"LoginName": "htkn_user", "UserRole": "LECTURER"}

    @pytest.mark.parametrize(
        "name,params",
        [
            ("SP_LOGIN_INFO; DROP TABLE STUDENT", {}),
            ("SP_LOGIN_INFO", {"Login Name": "x"}),
            ("1SP", {}),
        ],
    )
    async def test_call_procedure_rejects_bad_identifiers(self, name, params):
        engine, conn = make_engine()
        pool = ConnectionPool(engine, CallerClass.STAFF, "Server: MSI")

        with pytest.raises(ValueError):
            await pool.call_procedure(name, params)
        conn.execute.assert_not_awaited()

    async def test_restricted_pool_refuses_writes(self):
        engine, conn = make_engine()
        pool = ConnectionPool(engine, CallerClass.RESTRICTED, "Server: MSI")

        with pytest.raises(RestrictedWriteForbidden):
            await pool.execute_write("UPDATE STUDENT SET FIRST_NAME = :n", {"n": "x"})

        engine.begin.assert_not_called()

    async def test_staff_pool_writes_in_transaction(self):
        engine, conn = make_engine()
        pool = ConnectionPool(engine, CallerClass.STAFF, "Server: MSI")

        count = await pool.execute_write("UPDATE STUDENT SET FIRST_NAME = :n", {"n": "x"})

        assert count == 1
        engine.begin.assert_called_once()

    async def test_close_is_idempotent(self):
        engine, _ = make_engine()
        pool = ConnectionPool(engine, CallerClass.STAFF, "Server: MSI")

        await pool.close()
        await pool.close()

        assert pool.closed
        engine.dispose.assert_awaited_once()
