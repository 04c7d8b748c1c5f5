#!/usr/bin/env python3
"""
Tenant Provisioning Script - Station Ledger

Registers a tenant in the master directory, creates the ledger tables in
its database and seeds the system accounts. Safe to re-run.

Usage:
    python scripts/provision_tenant.py station-042 station_042 [--host db2] [--port 5433]
"""

import argparse
import sys

from sqlalchemy.exc import SQLAlchemyError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision a station ledger tenant")
    parser.add_argument("tenant_key", help="Opaque tenant key sent in X-Tenant-Key")
    parser.add_argument("db_name", help="Tenant database name (file path for SQLite)")
    parser.add_argument("--host", default=None, help="Override TENANT_DB_HOST")
    parser.add_argument("--port", type=int, default=None, help="Override TENANT_DB_PORT")
    parser.add_argument("--notes", default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main function."""
    args = parse_args(argv)

    from stationledger.core.config import get_settings
    from stationledger.core.logging_config import configure_logging
    from stationledger.domain.exceptions import LedgerError
    from stationledger.infrastructure.database import (
        align_ledger_schema,
        align_master_schema,
        build_engine,
        make_session_factory,
        seed_system_accounts,
    )
    from stationledger.infrastructure.tenancy.registry import DatabaseTenantRegistry

    settings = get_settings()
    configure_logging(settings)

    print("=" * 60)
    print(f"Provisioning tenant '{args.tenant_key}'")
    print("=" * 60)

    master_engine = build_engine(settings.MASTER_DATABASE_URL, settings)
    tenant_engine = None
    try:
        align_master_schema(master_engine)
        registry = DatabaseTenantRegistry(master_engine, settings)
        params = registry.register(
            args.tenant_key, args.db_name, db_host=args.host, db_port=args.port, notes=args.notes
        )
        print(f"✓ Registered in tenant directory -> {params.database_name}")

        tenant_engine = build_engine(params.url(), settings)
        align_ledger_schema(tenant_engine)
        print("✓ Ledger schema aligned")

        created = seed_system_accounts(make_session_factory(tenant_engine))
        print(f"✓ System accounts seeded ({created} created)")
    except LedgerError as e:
        print(f"\n❌ Error: {e.message}")
        return 1
    except SQLAlchemyError as e:
        print(f"\n❌ Database error: {e}")
        return 1
    finally:
        if tenant_engine is not None:
            tenant_engine.dispose()
        master_engine.dispose()

    print("\n" + "=" * 60)
    print("Provisioning completed successfully!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
