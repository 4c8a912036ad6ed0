import pytest

from campus_gateway.core.errors import DirectoryUnavailable
from campus_gateway.db.profiles import CallerClass
from campus_gateway.diagnostics import diagnose_connection, diagnose_departments, suggestions_for


async def test_reachable_server(registry):
    result = await diagnose_connection(registry, "HOST\\INSTANCE1", CallerClass.STAFF)

    assert result.can_connect is True
    assert result.error is None
    assert result.suggestions == []
    assert result.connection_summary == "Server: HOST\\INSTANCE1, User: HTKN, Database: QLDSV_TC"


async def test_unreachable_server_gets_hints(registry, connector):
    connector.fail_with["HOST\\INSTANCE1"] = ConnectionError("[08001] Login timeout expired (HYT00)")

    result = await diagnose_connection(registry, "HOST\\INSTANCE1", CallerClass.RESTRICTED)

    assert result.can_connect is False
    assert "HYT00" in result.error
    assert "Check firewall settings for SQL Server ports" in result.suggestions
    assert "For named instances, ensure SQL Server Browser service is running" in result.suggestions


async def test_summary_never_contains_secret(registry, connector):
    connector.fail_with["MSI"] = ConnectionError("Login failed for user 'HTKN' (28000)")

    result = await diagnose_connection(registry, "MSI", CallerClass.STAFF)

    assert "staff-pw" not in result.model_dump_json()


async def test_malformed_identifier(registry, connector):
    result = await diagnose_connection(registry, "\\INSTANCE", CallerClass.STAFF)

    assert result.can_connect is False
    assert result.error == "Invalid server identifier"
    assert connector.calls == []


def test_login_failure_hints():
    hints = suggestions_for("Login failed for user 'SV'", "MSI", "SV")

    assert "Check if user 'SV' exists and has correct password" in hints
    assert not any("named instances" in h for h in hints)


async def test_diagnose_departments(directory, registry, connector):
    connector.fail_with["MSI\\MSSQLSERVER2"] = ConnectionError("timeout")

    report = await diagnose_departments(directory, registry)

    assert [r.department for r in report["results"]] == [
        "Accounting Department",
        "IT Department",
        "Telecommunications Department",
    ]
    assert report["summary"] == {
        "total_departments": 3,
        "staff_connections_working": 2,
        "restricted_connections_working": 2,
    }


async def test_diagnose_departments_without_directory(directory, registry, connector):
    connector.fail_with["MSI"] = ConnectionError("timeout")

    with pytest.raises(DirectoryUnavailable):
        await diagnose_departments(directory, registry)
