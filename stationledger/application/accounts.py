"""
Chart of Accounts - create, list, update, protect and balance ledger accounts.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stationledger.application.dto.ledger_dto import (
    AccountBalanceDTO,
    AccountCreateDTO,
    AccountProtectionDTO,
    AccountResponseDTO,
    AccountUpdateDTO,
    Page,
)
from stationledger.application.transaction import transaction
from stationledger.domain.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    ImmutableSystemAccountError,
    ValidationError,
)
from stationledger.domain.value_objects import (
    ZERO,
    AccountStatus,
    AccountType,
    VoucherStatus,
    balance_type,
    natural_side,
    signed_balance,
)
from stationledger.infrastructure.database.models import (
    JournalEntryLine,
    JournalVoucher,
    LedgerAccount,
)

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
MAX_PAGE_SIZE = 500

# Fields a system account never lets go of, with the verb used in errors.
_SYSTEM_LOCKED_FIELDS = {
    "name": "renamed",
    "account_type": "reclassified",
    "is_system_account": "unmarked as system",
}


def check_pagination(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be at least 1", field="page")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")


LIKE_ESCAPE = "\\"


def like_pattern(search: str) -> str:
    """Substring pattern for ilike with the wildcards in `search` matched literally."""
    escaped = (
        search.strip()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def _clean_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Account name is required", field="name")
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Account name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
            field="name",
        )
    return name


class ChartOfAccountsService:
    """Account management for one tenant session."""

    def __init__(self, db: Session, actor_id: str | None = None):
        self.db = db
        self.actor_id = actor_id

    def create_account(self, data: AccountCreateDTO) -> LedgerAccount:
        """Create a user account. System accounts only come from seeding."""
        name = _clean_name(data.name)
        account_type = AccountType(data.account_type)
        self._ensure_name_free(name)

        account = LedgerAccount(
            name=name,
            account_type=account_type.value,
            status=AccountStatus(data.status).value,
            description=data.description,
            is_system_account=False,
            created_by=self.actor_id,
            updated_by=self.actor_id,
        )
        with transaction(self.db, "create_account"):
            self.db.add(account)
            self._flush_unique(name)

        logger.info(
            "Created ledger account",
            extra={"account_id": account.id, "account_type": account.account_type},
        )
        return account

    def list_accounts(
        self,
        account_type: AccountType | None = None,
        status: AccountStatus | None = None,
        is_system_account: bool | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page[AccountResponseDTO]:
        check_pagination(page, limit)

        query = select(LedgerAccount)
        if account_type is not None:
            query = query.where(LedgerAccount.account_type == AccountType(account_type).value)
        if status is not None:
            query = query.where(LedgerAccount.status == AccountStatus(status).value)
        if is_system_account is not None:
            query = query.where(LedgerAccount.is_system_account == is_system_account)
        if search:
            pattern = like_pattern(search)
            query = query.where(or_(
                LedgerAccount.name.ilike(pattern, escape=LIKE_ESCAPE),
                LedgerAccount.description.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = self.db.scalar(select(func.count()).select_from(query.subquery()))
        rows = self.db.scalars(
            query.order_by(LedgerAccount.account_type, LedgerAccount.name)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return Page[AccountResponseDTO](
            items=[AccountResponseDTO.model_validate(row) for row in rows],
            total=total or 0,
            page=page,
            limit=limit,
        )

    def get_active_accounts(self) -> list[LedgerAccount]:
        return list(self.db.scalars(
            select(LedgerAccount)
            .where(LedgerAccount.status == AccountStatus.ACTIVE.value)
            .order_by(LedgerAccount.account_type, LedgerAccount.name)
        ).all())

    def get_account(self, account_id: int) -> LedgerAccount:
        account = self.db.get(LedgerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def update_account(self, account_id: int, patch: AccountUpdateDTO) -> LedgerAccount:
        """
        Apply a partial update.

        System accounts may change description and status only.
        """
        account = self.get_account(account_id)
        changes = patch.model_dump(exclude_unset=True)

        if "account_type" in changes and changes["account_type"] is not None:
            changes["account_type"] = AccountType(changes["account_type"]).value
        if "status" in changes and changes["status"] is not None:
            changes["status"] = AccountStatus(changes["status"]).value

        if account.is_system_account:
            for field, verb in _SYSTEM_LOCKED_FIELDS.items():
                if field in changes and changes[field] != getattr(account, field):
                    raise ImmutableSystemAccountError(account.id, account.name, verb)
        elif changes.get("is_system_account"):
            raise ValidationError(
                "Accounts cannot be promoted to system accounts", field="is_system_account"
            )

        for field in ("name", "account_type", "status"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null", field=field)

        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
            if changes["name"] != account.name:
                self._ensure_name_free(changes["name"], exclude_id=account.id)

        changes.pop("is_system_account", None)
        with transaction(self.db, "update_account"):
            for field, value in changes.items():
                setattr(account, field, value)
            account.updated_by = self.actor_id
            account.updated_at = datetime.now(timezone.utc)
            self._flush_unique(account.name)

        logger.info(
            "Updated ledger account",
            extra={"account_id": account.id, "fields": sorted(changes)},
        )
        return account

    def delete_account(self, account_id: int) -> None:
        """Remove an account no voucher line has ever referenced."""
        account = self.get_account(account_id)
        if account.is_system_account:
            raise ImmutableSystemAccountError(account.id, account.name, "deleted")

        posted, cancelled = self._line_counts(account.id)
        if posted or cancelled:
            raise AccountInUseError(account.id, account.name, posted, cancelled)

        with transaction(self.db, "delete_account"):
            self.db.delete(account)

        logger.info("Deleted ledger account", extra={"account_id": account_id})

    def check_account_protection(self, account_id: int) -> AccountProtectionDTO:
        account = self.get_account(account_id)
        posted, cancelled = self._line_counts(account.id)
        line_count = posted + cancelled

        if account.is_system_account:
            return AccountProtectionDTO(
                account_id=account.id,
                protected=True,
                reason="System account cannot be deleted",
                can_modify=False,
                can_delete=False,
                can_deactivate=True,
                line_count=line_count,
            )
        if line_count:
            return AccountProtectionDTO(
                account_id=account.id,
                protected=True,
                reason=f"Account has {line_count} journal entries",
                can_modify=True,
                can_delete=False,
                can_deactivate=True,
                line_count=line_count,
            )
        return AccountProtectionDTO(
            account_id=account.id,
            protected=False,
            reason="Account can be safely deleted",
            can_modify=True,
            can_delete=True,
            can_deactivate=True,
            line_count=0,
        )

    def get_account_balance(
        self, account_id: int, as_of_date: date | None = None
    ) -> AccountBalanceDTO:
        """Balance from non-cancelled vouchers dated on or before as_of_date."""
        account = self.get_account(account_id)
        as_of_date = as_of_date or date.today()

        debits, credits = self.db.execute(
            select(
                func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
                func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
            )
            .select_from(JournalEntryLine)
            .join(JournalVoucher, JournalEntryLine.voucher_id == JournalVoucher.id)
            .where(
                JournalEntryLine.account_id == account.id,
                JournalVoucher.status != VoucherStatus.CANCELLED.value,
                JournalVoucher.voucher_date <= as_of_date,
            )
        ).one()
        debits = ZERO + debits
        credits = ZERO + credits

        account_type = AccountType(account.account_type)
        balance = signed_balance(account_type, debits, credits)
        return AccountBalanceDTO(
            account_id=account.id,
            account_name=account.name,
            account_type=account_type,
            natural_side=natural_side(account_type),
            total_debits=debits,
            total_credits=credits,
            balance=balance,
            amount=abs(balance),
            balance_type=balance_type(account_type, balance),
            as_of_date=as_of_date,
        )

    def _line_counts(self, account_id: int) -> tuple[int, int]:
        rows = self.db.execute(
            select(JournalVoucher.status, func.count(JournalEntryLine.id))
            .select_from(JournalEntryLine)
            .join(JournalVoucher, JournalEntryLine.voucher_id == JournalVoucher.id)
            .where(JournalEntryLine.account_id == account_id)
            .group_by(JournalVoucher.status)
        ).all()
        counts = {status: count for status, count in rows}
        return (
            counts.get(VoucherStatus.POSTED.value, 0),
            counts.get(VoucherStatus.CANCELLED.value, 0),
        )

    def _ensure_name_free(self, name: str, exclude_id: int | None = None) -> None:
        query = select(LedgerAccount.id).where(LedgerAccount.name == name)
        if exclude_id is not None:
            query = query.where(LedgerAccount.id != exclude_id)
        if self.db.scalar(query) is not None:
            raise ValidationError(f"Account name '{name}' already exists", field="name")

    def _flush_unique(self, name: str) -> None:
        # A concurrent insert can still win the unique constraint race.
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Account name '{name}' already exists", field="name") from exc
