"""
Infrastructure - SQLModel table definitions.

One fixed schema is shared by every tenant database; only the connection
target differs. The tenant directory lives in the master database.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerAccount(SQLModel, table=True):
    """Chart of accounts entry."""

    __tablename__ = "ledger_account"
    __table_args__ = (
        UniqueConstraint("name", name="uq_ledger_account_name"),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    account_type: str = Field(index=True)
    is_system_account: bool = Field(default=False, index=True)
    status: str = Field(default="active", index=True)
    description: str | None = None
    created_by: str | None = Field(default=None, max_length=50)
    updated_by: str | None = Field(default=None, max_length=50)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    lines: list["JournalEntryLine"] = Relationship(back_populates="account")


class JournalVoucher(SQLModel, table=True):
    """Voucher header. Immutable once posted except for cancellation."""

    __tablename__ = "journal_voucher"
    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_journal_voucher_number"),
        UniqueConstraint("sequence_no", name="uq_journal_voucher_sequence"),
    )

    id: int | None = Field(default=None, primary_key=True)
    voucher_number: str = Field(max_length=20)
    sequence_no: int
    voucher_type: str = Field(index=True)
    voucher_date: date = Field(index=True)
    reference_number: str | None = Field(default=None, max_length=50)
    narration: str | None = Field(default=None, max_length=500)
    total_amount: Decimal = Field(max_digits=14, decimal_places=2)
    status: str = Field(default="Posted", index=True)
    created_by: str | None = Field(default=None, max_length=50, index=True)
    updated_by: str | None = Field(default=None, max_length=50)
    cancelled_by: str | None = Field(default=None, max_length=50)
    cancelled_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    lines: list["JournalEntryLine"] = Relationship(
        back_populates="voucher",
        sa_relationship_kwargs={"order_by": "JournalEntryLine.line_no"},
    )


class JournalEntryLine(SQLModel, table=True):
    """One debit or credit leg of a voucher."""

    __tablename__ = "journal_entry_line"
    __table_args__ = (
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0",
            name="ck_journal_entry_line_non_negative",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    voucher_id: int = Field(foreign_key="journal_voucher.id", index=True)
    account_id: int = Field(foreign_key="ledger_account.id", index=True)
    line_no: int
    debit_amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    credit_amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    narration: str | None = Field(default=None, max_length=200)

    voucher: JournalVoucher = Relationship(back_populates="lines")
    account: LedgerAccount = Relationship(back_populates="lines")


class VoucherSequence(SQLModel, table=True):
    """Per-tenant voucher counter. Only ever incremented."""

    __tablename__ = "voucher_sequence"

    id: int = Field(default=1, primary_key=True)
    last_value: int = 0


class TenantDirectory(SQLModel, table=True):
    """
    Maps a tenant key to its database (master database only).

    No credentials are stored here; they come from configuration.
    """

    __tablename__ = "tenant_directory"

    id: int | None = Field(default=None, primary_key=True)
    tenant_key: str = Field(unique=True, index=True, max_length=64)
    db_name: str = Field(max_length=128)
    db_host: str | None = None
    db_port: int | None = None
    is_active: bool = True
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


LEDGER_TABLES = [
    LedgerAccount.__table__,
    JournalVoucher.__table__,
    JournalEntryLine.__table__,
    VoucherSequence.__table__,
]

MASTER_TABLES = [TenantDirectory.__table__]
