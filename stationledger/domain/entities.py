"""
Domain Entities - Plain snapshots the ledger rules operate on.
Persistence rows live in infrastructure.database.models; the rules below
never touch a session.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from .value_objects import ZERO, AccountStatus, AccountType


@dataclass(frozen=True, slots=True)
class AccountRef:
    """Minimal view of a ledger account used during voucher validation."""
    id: int
    name: str
    account_type: AccountType
    status: AccountStatus = AccountStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class VoucherLineDraft:
    """One debit or credit leg before posting."""
    account_id: int
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    narration: str | None = None

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0

    @property
    def amount(self) -> Decimal:
        return self.debit_amount if self.is_debit else self.credit_amount


@dataclass(frozen=True, slots=True)
class ValidatedVoucher:
    """Result of a successful validation: normalized lines and their totals."""
    lines: tuple[VoucherLineDraft, ...]
    total_debits: Decimal
    total_credits: Decimal

    @property
    def total_amount(self) -> Decimal:
        return self.total_debits


@dataclass(frozen=True, slots=True)
class PostedLine:
    """A persisted line as read back by the integrity check."""
    account_id: int
    debit_amount: Decimal
    credit_amount: Decimal


@dataclass
class IntegrityViolation:
    """
    A persisted inconsistency found by the integrity check.
    Reported as data for manual remediation, never auto-corrected.
    """
    type: str
    message: str
    voucher_id: int | None = None
    voucher_number: str | None = None
    details: dict = field(default_factory=dict)
