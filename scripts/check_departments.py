import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from campus_gateway.db.registry import PoolRegistry
from campus_gateway.diagnostics import diagnose_departments
from campus_gateway.directory import DepartmentDirectory


def show(label, diag):
    state = "OK" if diag.can_connect else "FAILED"
    print(f"  {label:<10} {state}  ({diag.connection_summary})")
    if diag.error:
        print(f"             {diag.error}")
    for hint in diag.suggestions:
        print(f"             - {hint}")


async def main():
    registry = PoolRegistry()
    directory = DepartmentDirectory(registry)

    try:
        print("Checking directory view on the primary server...")
        access = await directory.check_view_access()
        if not access["accessible"]:
            print(f"Directory view not readable: {access['error']}")
            return 1

        print("Connecting to every department with both logins...")
        report = await diagnose_departments(directory, registry)

        for result in report["results"]:
            print(f"{result.department} [{result.server_identifier}]")
            show("staff", result.staff)
            show("student", result.restricted)

        summary = report["summary"]
        print(
            f"\n{summary['total_departments']} department(s): "
            f"{summary['staff_connections_working']} staff / "
            f"{summary['restricted_connections_working']} student connection(s) working"
        )
        return 0
    finally:
        await registry.shutdown_all()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
