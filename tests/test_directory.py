import itertools

import pytest

from campus_gateway.core.errors import DirectoryUnavailable
from campus_gateway.db.profiles import CallerClass
from campus_gateway.db.registry import pool_key


async def test_list_tenants_sorted_by_branch_name(directory):
    tenants = await directory.list_tenants()

    assert [t.branch_name for t in tenants] == [
        "Accounting Department",
        "IT Department",
        "Telecommunications Department",
    ]


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
async def test_ordering_holds_for_any_row_order(directory, campus, order):
    rows = list(campus.directory_rows)
    campus.directory_rows = [rows[i] for i in order]

    names = [t.branch_name for t in await directory.list_tenants()]

    assert names == sorted(names)


async def test_directory_reads_through_primary_staff_pool(directory, connector):
    await directory.list_tenants()

    profile = connector.calls[0]
    assert profile.address == "MSI"
    assert profile.caller_class is CallerClass.STAFF


async def test_every_call_rereads_the_view(directory, connector, campus):
    await directory.list_tenants()
    campus.directory_rows.append(
        {"BRANCH_NAME": "Biology Department", "SERVER_NAME": "MSI\\MSSQLSERVER4"}
    )
    tenants = await directory.list_tenants()

    primary = connector.pools[0]
    assert len(primary.queries) == 2
    assert "Biology Department" in [t.branch_name for t in tenants]


async def test_find_by_branch_name(directory):
    tenant = await directory.find_by_branch_name("IT Department")

    assert tenant is not None
    assert tenant.server_identifier == "HOST\\INSTANCE1"


async def test_find_by_branch_name_missing(directory):
    assert await directory.find_by_branch_name("Astrology Department") is None


async def test_find_by_server_name(directory):
    tenant = await directory.find_by_server_name("MSI\\MSSQLSERVER3")
    assert tenant.branch_name == "Accounting Department"


async def test_validate_department(directory):
    assert await directory.validate_department("IT Department", "HOST\\INSTANCE1") is True
    assert await directory.validate_department("IT Department", "MSI\\MSSQLSERVER3") is False


async def test_list_for_dropdown(directory):
    options = await directory.list_for_dropdown()

    assert options[0] == {
        "value": "Accounting Department",
        "label": "Accounting Department",
        "server_name": "MSI\\MSSQLSERVER3",
    }


async def test_padded_rows_are_stripped(directory, campus):
    campus.directory_rows = [{"BRANCH_NAME": "IT Department   ", "SERVER_NAME": " HOST\\INSTANCE1 "}]

    tenants = await directory.list_tenants()

    assert tenants[0].branch_name == "IT Department"
    assert tenants[0].server_identifier == "HOST\\INSTANCE1"


class TestDirectoryUnavailable:

    async def test_primary_unreachable(self, directory, connector):
        connector.fail_with["MSI"] = ConnectionError("timeout")

        with pytest.raises(DirectoryUnavailable):
            await directory.list_tenants()

    async def test_view_unreadable(self, directory, connector, registry):
        await directory.list_tenants()

        def broken(sql, params):
            raise RuntimeError("Invalid object name 'VIEW_FRAGMENT_LIST'")

        connector.pools[0].query_handler = broken

        with pytest.raises(DirectoryUnavailable) as excinfo:
            await directory.list_tenants()

        assert "VIEW_FRAGMENT_LIST" not in excinfo.value.public_message
        # A statement error leaves the primary pool in place
        assert pool_key("MSI", CallerClass.STAFF) in registry

    async def test_malformed_row(self, directory, campus):
        campus.directory_rows = [{"BRANCH_NAME": "", "SERVER_NAME": "MSI"}]

        with pytest.raises(DirectoryUnavailable):
            await directory.list_tenants()

    async def test_lookup_does_not_fall_back(self, directory, connector):
        connector.fail_with["MSI"] = ConnectionError("timeout")

        with pytest.raises(DirectoryUnavailable):
            await directory.find_by_branch_name("IT Department")


class TestViewAccess:

    async def test_view_accessible(self, directory):
        assert await directory.check_view_access() == {
            "exists": True,
            "accessible": True,
            "error": None,
        }

    async def test_view_missing(self, directory, campus):
        campus.view_exists = False

        result = await directory.check_view_access()

        assert result["exists"] is False
        assert result["accessible"] is False

    async def test_primary_down(self, directory, connector):
        connector.fail_with["MSI"] = ConnectionError("timeout")

        result = await directory.check_view_access()

        assert result == {
            "exists": False,
            "accessible": False,
            "error": "Primary server unreachable",
        }
