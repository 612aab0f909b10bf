#!/usr/bin/env python
"""Operator script for the ERP connection.

Creates the local tables if needed, then either tests the saved connection,
synchronizes the ERP reference data or prints the last sync status.

Usage:
    python backend/scripts/erp_sync.py sync
    python backend/scripts/erp_sync.py test
    python backend/scripts/erp_sync.py status

Environment Variables:
    LOCAL_DATABASE_URL: Local store connection string
    ERP_ODBC_DRIVER: ODBC driver for SQL Server
    LOG_LEVEL: Logging level (default INFO)
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from config import settings
from database import init_local_schema
from observability.logging_config import configure_logging
from connectors import ErpIntegrationService


async def run(command: str) -> int:
    service = ErpIntegrationService.create_default()

    try:
        if command == "test":
            connection_settings = await service.get_settings()
            if connection_settings is None:
                print("ERROR: No ERP connection settings saved")
                return 1
            ok = await service.test_connection(connection_settings.model_dump())
            print("Connection OK" if ok else "Connection FAILED (see log for details)")
            return 0 if ok else 1

        if command == "sync":
            summary = await service.sync_reference_data()
            print(summary.message)
            for result in summary.results:
                marker = "ok" if result.success else f"FAILED: {result.error}"
                print(f"  {result.kind.value:<16} {result.count:>5}  {marker}")
            return 0 if summary.success else 1

        status = await service.get_last_sync_status()
        print(f"Last sync: {status.status}")
        print(f"Message:   {status.message}")
        print(f"Timestamp: {status.timestamp or '-'}")
        for kind, count in service.synchronizer.reference_counts().items():
            print(f"  {kind.value:<16} {count:>5} cached")
        return 0
    finally:
        await service.close()


def main():
    parser = argparse.ArgumentParser(description="ERP connection maintenance")
    parser.add_argument("command", choices=["sync", "test", "status"])
    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    init_local_schema()

    sys.exit(asyncio.run(run(args.command)))


if __name__ == "__main__":
    main()
