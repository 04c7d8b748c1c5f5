"""
Voucher Engine - the only writer of balance-affecting ledger state.

Draft -> Posted -> Cancelled. Posted lines are never edited; cancelling
flips the header status and leaves every row in place.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.orm import Session, selectinload

from stationledger.application.accounts import LIKE_ESCAPE, check_pagination, like_pattern
from stationledger.application.dto.ledger_dto import (
    JournalVoucherDTO,
    Page,
    QuickVoucherDTO,
    VoucherCreateDTO,
    VoucherLineCreateDTO,
    VoucherLineResponseDTO,
    VoucherResponseDTO,
    VoucherValidationDTO,
)
from stationledger.application.transaction import transaction
from stationledger.domain.entities import AccountRef, VoucherLineDraft
from stationledger.domain.exceptions import (
    AccountNotFoundError,
    AlreadyCancelledError,
    ValidationError,
    VoucherNotFoundError,
)
from stationledger.domain.services import pair_lines, validate_voucher
from stationledger.domain.value_objects import (
    VOUCHER_NUMBER_PREFIX,
    AccountStatus,
    AccountType,
    VoucherStatus,
    VoucherType,
    to_money,
)
from stationledger.infrastructure.database.models import (
    JournalEntryLine,
    JournalVoucher,
    LedgerAccount,
    VoucherSequence,
)

logger = logging.getLogger(__name__)

NARRATION_MAX_LENGTH = 500
REFERENCE_MAX_LENGTH = 50
SEQUENCE_ROW_ID = 1


def format_voucher_number(voucher_type: VoucherType, sequence_no: int) -> str:
    return f"{VOUCHER_NUMBER_PREFIX[voucher_type]}-{sequence_no:06d}"


def account_ref(account: LedgerAccount) -> AccountRef:
    return AccountRef(
        id=account.id,
        name=account.name,
        account_type=AccountType(account.account_type),
        status=AccountStatus(account.status),
    )


def voucher_to_dto(voucher: JournalVoucher) -> VoucherResponseDTO:
    return VoucherResponseDTO(
        id=voucher.id,
        voucher_number=voucher.voucher_number,
        sequence_no=voucher.sequence_no,
        voucher_type=voucher.voucher_type,
        voucher_date=voucher.voucher_date,
        reference_number=voucher.reference_number,
        narration=voucher.narration,
        total_amount=voucher.total_amount,
        status=voucher.status,
        created_by=voucher.created_by,
        updated_by=voucher.updated_by,
        cancelled_by=voucher.cancelled_by,
        cancelled_at=voucher.cancelled_at,
        created_at=voucher.created_at,
        lines=[
            VoucherLineResponseDTO(
                id=line.id,
                line_no=line.line_no,
                account_id=line.account_id,
                account_name=line.account.name if line.account else None,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                narration=line.narration,
            )
            for line in voucher.lines
        ],
    )


class VoucherService:
    """Posting, cancellation and lookup of journal vouchers in one tenant."""

    def __init__(self, db: Session, actor_id: str | None = None):
        self.db = db
        self.actor_id = actor_id

    def create_voucher(self, data: VoucherCreateDTO) -> JournalVoucher:
        """
        Validate and post a voucher with all its lines in one transaction.

        Raises:
            ValidationError: bad header (type, future date, narration length)
            InvalidLineError: a line breaks a double-entry rule
            UnbalancedVoucherError: debits and credits differ
            LedgerInfrastructureError: the store failed; nothing was written
        """
        voucher_type = self._check_header(data)
        drafts = self._drafts(data)

        with transaction(self.db, "create_voucher"):
            # Counter row first: on SQLite this takes the database write lock
            # before the account states are read.
            sequence_no = self._next_sequence()
            validated = validate_voucher(drafts, self._accounts_for(drafts, lock=True))
            voucher = JournalVoucher(
                voucher_number=format_voucher_number(voucher_type, sequence_no),
                sequence_no=sequence_no,
                voucher_type=voucher_type.value,
                voucher_date=data.voucher_date,
                reference_number=data.reference_number,
                narration=data.narration,
                total_amount=validated.total_amount,
                status=VoucherStatus.POSTED.value,
                created_by=self.actor_id,
                updated_by=self.actor_id,
            )
            voucher.lines = [
                JournalEntryLine(
                    line_no=line_no,
                    account_id=line.account_id,
                    debit_amount=line.debit_amount,
                    credit_amount=line.credit_amount,
                    narration=line.narration,
                )
                for line_no, line in enumerate(validated.lines, start=1)
            ]
            self.db.add(voucher)
            self.db.flush()

        logger.info(
            "Posted voucher",
            extra={
                "voucher_id": voucher.id,
                "voucher_number": voucher.voucher_number,
                "voucher_type": voucher.voucher_type,
                "total_amount": str(voucher.total_amount),
                "line_count": len(validated.lines),
                "actor_id": self.actor_id,
            },
        )
        return voucher

    def validate_voucher(self, data: VoucherCreateDTO) -> VoucherValidationDTO:
        """
        Run every posting check against current account states without writing.

        Raises the same errors create_voucher would; a later post may still be
        rejected if an account is deactivated in between.
        """
        voucher_type = self._check_header(data)
        drafts = self._drafts(data)
        validated = validate_voucher(drafts, self._accounts_for(drafts))
        return VoucherValidationDTO(
            voucher_type=voucher_type,
            total_debits=validated.total_debits,
            total_credits=validated.total_credits,
            total_amount=validated.total_amount,
            line_count=len(validated.lines),
        )

    def create_payment_voucher(self, data: QuickVoucherDTO) -> JournalVoucher:
        """Dr expense/liability/vendor, Cr bank."""
        return self._create_paired(VoucherType.PAYMENT, data)

    def create_receipt_voucher(self, data: QuickVoucherDTO) -> JournalVoucher:
        """Dr bank, Cr customer/asset/liability."""
        return self._create_paired(VoucherType.RECEIPT, data)

    def create_journal_voucher(self, data: JournalVoucherDTO) -> JournalVoucher:
        return self.create_voucher(VoucherCreateDTO(
            voucher_type=VoucherType.JOURNAL,
            voucher_date=data.voucher_date,
            reference_number=data.reference_number,
            narration=data.narration,
            lines=data.lines,
        ))

    def cancel_voucher(self, voucher_id: int) -> JournalVoucher:
        """Posted -> Cancelled. No rows are deleted."""
        voucher = self.get_voucher(voucher_id)
        if voucher.status == VoucherStatus.CANCELLED.value:
            raise AlreadyCancelledError(voucher.id, voucher.voucher_number)

        now = datetime.now(timezone.utc)
        with transaction(self.db, "cancel_voucher"):
            # Conditional update takes the row lock; a concurrent cancel loses here.
            result = self.db.execute(
                update(JournalVoucher)
                .where(
                    JournalVoucher.id == voucher.id,
                    JournalVoucher.status == VoucherStatus.POSTED.value,
                )
                .values(
                    status=VoucherStatus.CANCELLED.value,
                    cancelled_by=self.actor_id,
                    cancelled_at=now,
                    updated_by=self.actor_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AlreadyCancelledError(voucher.id, voucher.voucher_number)

        self.db.refresh(voucher)
        logger.info(
            "Cancelled voucher",
            extra={
                "voucher_id": voucher.id,
                "voucher_number": voucher.voucher_number,
                "actor_id": self.actor_id,
            },
        )
        return voucher

    def get_voucher(self, voucher_id: int) -> JournalVoucher:
        voucher = self.db.scalars(
            select(JournalVoucher)
            .where(JournalVoucher.id == voucher_id)
            .options(selectinload(JournalVoucher.lines).selectinload(JournalEntryLine.account))
        ).first()
        if voucher is None:
            raise VoucherNotFoundError(voucher_id)
        return voucher

    def get_vouchers(
        self,
        voucher_type: VoucherType | None = None,
        status: VoucherStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page[VoucherResponseDTO]:
        check_pagination(page, limit)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        query = select(JournalVoucher)
        if voucher_type is not None:
            query = query.where(JournalVoucher.voucher_type == VoucherType(voucher_type).value)
        if status is not None:
            query = query.where(JournalVoucher.status == VoucherStatus(status).value)
        if start_date is not None:
            query = query.where(JournalVoucher.voucher_date >= start_date)
        if end_date is not None:
            query = query.where(JournalVoucher.voucher_date <= end_date)
        if search:
            pattern = like_pattern(search)
            query = query.where(or_(
                JournalVoucher.narration.ilike(pattern, escape=LIKE_ESCAPE),
                JournalVoucher.reference_number.ilike(pattern, escape=LIKE_ESCAPE),
                JournalVoucher.voucher_number.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = self.db.scalar(select(func.count()).select_from(query.subquery()))
        vouchers = self.db.scalars(
            query.options(
                selectinload(JournalVoucher.lines).selectinload(JournalEntryLine.account)
            )
            .order_by(JournalVoucher.voucher_date.desc(), JournalVoucher.sequence_no.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return Page[VoucherResponseDTO](
            items=[voucher_to_dto(v) for v in vouchers],
            total=total or 0,
            page=page,
            limit=limit,
        )

    def default_bank_account(self) -> LedgerAccount:
        """The tenant's system Bank account, falling back to any active Bank account."""
        account = self.db.scalars(
            select(LedgerAccount)
            .where(
                LedgerAccount.account_type == AccountType.BANK.value,
                LedgerAccount.status == AccountStatus.ACTIVE.value,
            )
            .order_by(LedgerAccount.is_system_account.desc(), LedgerAccount.id)
        ).first()
        if account is None:
            raise ValidationError("No active Bank account is available", field="bank_account_id")
        return account

    def _create_paired(self, voucher_type: VoucherType, data: QuickVoucherDTO) -> JournalVoucher:
        counterpart = self._get_account(data.account_id)
        if data.bank_account_id is not None:
            bank = self._get_account(data.bank_account_id)
        else:
            bank = self.default_bank_account()

        drafts = pair_lines(voucher_type, to_money(data.amount), account_ref(counterpart), account_ref(bank))
        return self.create_voucher(VoucherCreateDTO(
            voucher_type=voucher_type,
            voucher_date=data.voucher_date,
            reference_number=data.reference_number,
            narration=data.narration,
            lines=[
                VoucherLineCreateDTO(
                    account_id=d.account_id,
                    debit_amount=d.debit_amount,
                    credit_amount=d.credit_amount,
                )
                for d in drafts
            ],
        ))

    def _check_header(self, data: VoucherCreateDTO) -> VoucherType:
        try:
            voucher_type = VoucherType(data.voucher_type)
        except ValueError:
            raise ValidationError(
                f"Invalid voucher type: {data.voucher_type}", field="voucher_type"
            ) from None
        if data.voucher_date > date.today():
            raise ValidationError("Voucher date cannot be in the future", field="voucher_date")
        if data.narration and len(data.narration) > NARRATION_MAX_LENGTH:
            raise ValidationError(
                f"Narration cannot exceed {NARRATION_MAX_LENGTH} characters", field="narration"
            )
        if data.reference_number and len(data.reference_number) > REFERENCE_MAX_LENGTH:
            raise ValidationError(
                f"Reference number cannot exceed {REFERENCE_MAX_LENGTH} characters",
                field="reference_number",
            )
        return voucher_type

    def _get_account(self, account_id: int) -> LedgerAccount:
        account = self.db.get(LedgerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    @staticmethod
    def _drafts(data: VoucherCreateDTO) -> list[VoucherLineDraft]:
        return [
            VoucherLineDraft(
                account_id=line.account_id,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                narration=line.narration,
            )
            for line in data.lines
        ]

    def _accounts_for(
        self, drafts: list[VoucherLineDraft], lock: bool = False
    ) -> dict[int, AccountRef]:
        ids = {d.account_id for d in drafts}
        if not ids:
            return {}
        query = select(LedgerAccount).where(LedgerAccount.id.in_(ids))
        if lock:
            # FOR SHARE holds off a concurrent deactivation until commit.
            query = query.with_for_update(read=True).execution_options(populate_existing=True)
        rows = self.db.scalars(query).all()
        return {row.id: account_ref(row) for row in rows}

    def _next_sequence(self) -> int:
        # UPDATE first so the counter row is write-locked before it is read.
        bumped = self.db.execute(
            update(VoucherSequence)
            .where(VoucherSequence.id == SEQUENCE_ROW_ID)
            .values(last_value=VoucherSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            start = (self.db.scalar(select(func.max(JournalVoucher.sequence_no))) or 0) + 1
            self.db.execute(
                insert(VoucherSequence).values(id=SEQUENCE_ROW_ID, last_value=start)
            )
            return start
        return self.db.scalar(
            select(VoucherSequence.last_value).where(VoucherSequence.id == SEQUENCE_ROW_ID)
        )
