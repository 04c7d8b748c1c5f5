"""
Database engines, schema alignment and system-account seeding.
"""

import logging

from sqlalchemy import event, inspect, select
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlmodel import SQLModel, create_engine

from stationledger.core.config import Settings
from stationledger.domain.value_objects import AccountType
from stationledger.infrastructure.database.models import (
    LEDGER_TABLES,
    MASTER_TABLES,
    LedgerAccount,
    VoucherSequence,
)

logger = logging.getLogger(__name__)

# Built-in accounts every tenant starts with; protected from deletion.
SYSTEM_ACCOUNTS = [
    ("Cash on Hand", AccountType.ASSET, "Cash collected at the station"),
    ("Bank Account", AccountType.BANK, "Default bank account for payments and receipts"),
    ("Sales Revenue", AccountType.CUSTOMER, "Fuel and lubricant sales"),
    ("Purchase Expenses", AccountType.DIRECT_EXPENSE, "Fuel purchases from suppliers"),
    ("Inventory", AccountType.ASSET, "Fuel stock in tanks"),
]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: URL | str, settings: Settings) -> Engine:
    """Create an engine with pool settings appropriate for the dialect."""
    url = make_url(url)
    if url.get_backend_name() == "sqlite":
        engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def has_ledger_schema(engine: Engine) -> bool:
    """True when every ledger table exists in the target database."""
    inspector = inspect(engine)
    return all(inspector.has_table(table.name) for table in LEDGER_TABLES)


def align_ledger_schema(engine: Engine) -> None:
    """Create missing ledger tables. Existing tables are left untouched."""
    SQLModel.metadata.create_all(bind=engine, tables=LEDGER_TABLES)


def align_master_schema(engine: Engine) -> None:
    SQLModel.metadata.create_all(bind=engine, tables=MASTER_TABLES)


def seed_system_accounts(session_factory: sessionmaker[Session]) -> int:
    """
    Insert missing system accounts and the voucher counter row.

    Idempotent: accounts are matched by name. Returns the number created.
    """
    created = 0
    with session_factory() as db:
        existing = set(db.scalars(select(LedgerAccount.name)).all())
        for name, account_type, description in SYSTEM_ACCOUNTS:
            if name in existing:
                continue
            db.add(LedgerAccount(
                name=name,
                account_type=account_type.value,
                is_system_account=True,
                description=description,
                created_by="system",
                updated_by="system",
            ))
            created += 1

        if db.get(VoucherSequence, 1) is None:
            db.add(VoucherSequence(id=1, last_value=0))

        db.commit()
    return created
