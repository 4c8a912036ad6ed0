import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Settings are read at import time; provide the required secrets first.
os.environ.setdefault("CAMPUS_STAFF_SECRET", "staff-secret-for-tests")
os.environ.setdefault("CAMPUS_RESTRICTED_SECRET", "restricted-secret-for-tests")
os.environ.setdefault("CAMPUS_SESSION_SECRET", "session-secret-for-tests-must-be-long-enough")

from campus_gateway.config import Settings  # noqa: E402
from campus_gateway.db.profiles import CallerClass, CredentialProfile, CredentialResolver  # noqa: E402
from campus_gateway.db.registry import PoolRegistry  # noqa: E402
from campus_gateway.directory import DepartmentDirectory  # noqa: E402
from campus_gateway.auth.service import AuthenticationService  # noqa: E402


Rows = List[Dict[str, Any]]


# ---------------------------------------------------------------------
# Fake connection pool / connector
# ---------------------------------------------------------------------

class FakePool:
    """Stands in for ConnectionPool; answers through handler callables."""

    def __init__(self, caller_class: CallerClass, address: str) -> None:
        self.caller_class = caller_class
        self.description = address
        self.address = address
        self.queries: List[Tuple[str, Dict[str, Any]]] = []
        self.procedure_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.query_handler: Optional[Callable[[str, Dict[str, Any]], Rows]] = None
        self.procedure_handler: Optional[Callable[[str, Dict[str, Any]], Rows]] = None
        self.ping_error: Optional[Exception] = None
        self.close_count = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def fetch_all(self, sql, params=None):
        params = dict(params or {})
        self.queries.append((sql, params))
        if self.query_handler is None:
            return []
        return self.query_handler(sql, params)

    async def call_procedure(self, name, params=None):
        params = dict(params or {})
        self.procedure_calls.append((name, params))
        if self.procedure_handler is None:
            return []
        return self.procedure_handler(name, params)

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self):
        self.close_count += 1
        self._closed = True


class FakeConnector:
    """
    Async connector recording every connect attempt.

    Set `gate` to an asyncio.Event to hold connects open until it is set.
    """

    def __init__(self, configure: Optional[Callable[[FakePool, CredentialProfile], None]] = None) -> None:
        self.calls: List[CredentialProfile] = []
        self.pools: List[FakePool] = []
        self.fail_with: Dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.configure = configure

    def attempts_for(self, address: str, caller_class: CallerClass) -> int:
        return sum(
            1 for p in self.calls if p.address == address and p.caller_class is caller_class
        )

    async def __call__(self, profile: CredentialProfile) -> FakePool:
        self.calls.append(profile)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        exc = self.fail_with.get(profile.address)
        if exc is not None:
            raise exc

        pool = FakePool(profile.caller_class, profile.address)
        if self.configure is not None:
            self.configure(pool, profile)
        self.pools.append(pool)
        return pool


# ---------------------------------------------------------------------
# Fake campus: directory + department servers
# ---------------------------------------------------------------------

class FakeCampus:
    """
    In-memory model of the primary server and the department servers.
    """

    PRIMARY = "MSI"

    def __init__(self) -> None:
        self.directory_rows: Rows = [
            {"BRANCH_NAME": "Telecommunications Department", "SERVER_NAME": "MSI\\MSSQLSERVER2"},
            {"BRANCH_NAME": "IT Department", "SERVER_NAME": "HOST\\INSTANCE1"},
            {"BRANCH_NAME": "Accounting Department", "SERVER_NAME": "MSI\\MSSQLSERVER3"},
        ]
        self.view_exists = True
        # server -> {(login, discriminator): row}
        self.identities: Dict[str, Dict[Tuple[str, str], Dict[str, Any]]] = {
            "HOST\\INSTANCE1": {
                ("htkn_user", "LECTURER"): {
                    "USERNAME": "htkn_user",
                    "FULL_NAME": "Dr. Nguyen",
                    "RoleName": "KHOA",
                },
                ("N21DCCN001", "STUDENT"): {
                    "USERNAME": "N21DCCN001",
                    "FULL_NAME": "Tran Van An",
                    "ROLE_NAME": "SV",
                },
            },
            "MSI\\MSSQLSERVER3": {
                ("pkt_user", "LECTURER"): {
                    "USERNAME": "pkt_user",
                    "FULL_NAME": "Vo Thi Thu",
                    "RoleName": "PKT",
                },
            },
        }
        # server -> student ids
        self.students: Dict[str, set] = {"HOST\\INSTANCE1": {"N21DCCN001"}}

    def configure(self, pool: FakePool, profile: CredentialProfile) -> None:
        address = profile.address

        if address == self.PRIMARY:
            def primary_query(sql: str, params: Dict[str, Any]) -> Rows:
                if "INFORMATION_SCHEMA.VIEWS" in sql:
                    return [{"view_count": 1 if self.view_exists else 0}]
                if "VIEW_FRAGMENT_LIST" in sql:
                    return [dict(r) for r in self.directory_rows]
                return []

            pool.query_handler = primary_query
            return

        def department_query(sql: str, params: Dict[str, Any]) -> Rows:
            if "FROM STUDENT" in sql:
                ident = params.get("identifier")
                if ident in self.students.get(address, set()):
                    return [{"STUDENT_ID": ident}]
                return []
            if "@@SERVERNAME" in sql:
                return [{"server_name": address}]
            return []

        def department_procedure(name: str, params: Dict[str, Any]) -> Rows:
            if name != "SP_LOGIN_INFO":
                return []
            row = self.identities.get(address, {}).get((params["LoginName"], params["UserRole"]))
            return [dict(row)] if row else []

        pool.query_handler = department_query
        pool.procedure_handler = department_procedure


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        primary_server="MSI",
        database_name="QLDSV_TC",
        staff_login="HTKN",
        staff_secret="staff-pw",
        restricted_login="SV",
        restricted_secret="student-pw",
        session_secret="session-secret-for-tests-must-be-long-enough",
        admin_api_key="admin-key",
    )


@pytest.fixture
def resolver(test_settings) -> CredentialResolver:
    return CredentialResolver(test_settings)


@pytest.fixture
def campus() -> FakeCampus:
    return FakeCampus()


@pytest.fixture
def connector(campus) -> FakeConnector:
    return FakeConnector(configure=campus.configure)


@pytest.fixture
def registry(resolver, connector) -> PoolRegistry:
    return PoolRegistry(resolver=resolver, connector=connector)


@pytest.fixture
def directory(registry) -> DepartmentDirectory:
    return DepartmentDirectory(registry, primary_server=FakeCampus.PRIMARY)


@pytest.fixture
def auth_service(directory, registry) -> AuthenticationService:
    return AuthenticationService(directory, registry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
