"""
Ledger Reporting Engine - read-only reports derived from posted lines.

Every figure is recomputed from journal_entry_line; no stored aggregate
other than the voucher header total is ever read, and that one only to be
checked.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from itertools import groupby

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stationledger.application.dto.ledger_dto import (
    AccountResponseDTO,
    BalanceSheetDTO,
    CashFlowEntryDTO,
    CashFlowGroupDTO,
    CashFlowReportDTO,
    IntegrityReportDTO,
    IntegrityViolationDTO,
    LedgerReportDTO,
    LedgerTransactionDTO,
    ProfitLossDTO,
    StatementLineDTO,
    StatementSectionDTO,
    TrialBalanceDTO,
    TrialBalanceRowDTO,
)
from stationledger.domain.entities import IntegrityViolation, PostedLine
from stationledger.domain.exceptions import (
    AccountNotFoundError,
    IntegrityCheckInterrupted,
    ValidationError,
)
from stationledger.domain.services import check_posted_voucher
from stationledger.domain.value_objects import (
    ZERO,
    AccountStatus,
    AccountType,
    BalanceSide,
    VoucherStatus,
    VoucherType,
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

STREAM_BATCH_SIZE = 1000

# (total_debits, total_credits) keyed by account id.
AccountSums = Mapping[int, tuple[Decimal, Decimal]]

INCOME_TYPES = frozenset({AccountType.CUSTOMER})
EXPENSE_TYPES = frozenset({AccountType.DIRECT_EXPENSE, AccountType.INDIRECT_EXPENSE})
ASSET_TYPES = frozenset({AccountType.ASSET, AccountType.BANK})
LIABILITY_TYPES = frozenset({AccountType.LIABILITY, AccountType.VENDOR})
RETAINED_EARNINGS = "Retained Earnings"


def build_trial_balance(
    accounts: Iterable[LedgerAccount], sums: AccountSums, as_of_date: date
) -> TrialBalanceDTO:
    """
    One row per active account, plus inactive accounts still holding a balance.

    Each row's absolute balance goes in the debit or credit column depending
    on which side it sits on.
    """
    rows: list[TrialBalanceRowDTO] = []
    total_debits = ZERO
    total_credits = ZERO

    for account in accounts:
        debits, credits = sums.get(account.id, (ZERO, ZERO))
        account_type = AccountType(account.account_type)
        balance = signed_balance(account_type, debits, credits)
        if account.status != AccountStatus.ACTIVE.value and balance == 0:
            continue

        side = balance_type(account_type, balance)
        amount = abs(balance)
        debit = amount if side is BalanceSide.DEBIT else ZERO
        credit = amount if side is BalanceSide.CREDIT else ZERO
        total_debits += debit
        total_credits += credit
        rows.append(TrialBalanceRowDTO(
            account_id=account.id,
            account_name=account.name,
            account_type=account_type,
            status=account.status,
            natural_side=natural_side(account_type),
            debit=debit,
            credit=credit,
            amount=amount,
            balance_type=side,
        ))

    return TrialBalanceDTO(
        as_of_date=as_of_date,
        accounts=rows,
        total_debits=total_debits,
        total_credits=total_credits,
        difference=total_debits - total_credits,
        is_balanced=total_debits == total_credits,
    )


def build_statement_section(
    accounts: Iterable[LedgerAccount],
    sums: AccountSums,
    account_types: frozenset[AccountType],
    side: BalanceSide,
) -> StatementSectionDTO:
    """Accounts of the given types whose net amount on `side` is positive."""
    lines: list[StatementLineDTO] = []
    total = ZERO
    for account in accounts:
        account_type = AccountType(account.account_type)
        if account_type not in account_types:
            continue
        debits, credits = sums.get(account.id, (ZERO, ZERO))
        amount = debits - credits if side is BalanceSide.DEBIT else credits - debits
        if amount <= 0:
            continue
        total += amount
        lines.append(StatementLineDTO(
            account_id=account.id,
            account_name=account.name,
            account_type=account_type.value,
            amount=amount,
        ))
    return StatementSectionDTO(accounts=lines, total=total)


class LedgerReportingService:
    """Reports for one tenant session. Never writes."""

    def __init__(self, db: Session):
        self.db = db

    def get_trial_balance(self, as_of_date: date | None = None) -> TrialBalanceDTO:
        as_of_date = as_of_date or date.today()
        sums = self._account_sums(JournalVoucher.voucher_date <= as_of_date)
        return build_trial_balance(self._accounts(), sums, as_of_date)

    def get_ledger_report(
        self,
        account_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> LedgerReportDTO:
        """
        Account statement for a date window.

        Opening balance covers everything strictly before start_date; the
        running balance is kept on the account's natural side.
        """
        end_date = end_date or date.today()
        start_date = start_date or end_date.replace(day=1)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        account = self.db.get(LedgerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        account_type = AccountType(account.account_type)

        opening = self._account_sums(
            JournalVoucher.voucher_date < start_date, account_id=account.id
        ).get(account.id, (ZERO, ZERO))
        opening_balance = signed_balance(account_type, *opening)

        rows = self.db.execute(
            select(
                JournalEntryLine.id,
                JournalEntryLine.debit_amount,
                JournalEntryLine.credit_amount,
                JournalEntryLine.narration,
                JournalVoucher.id.label("voucher_id"),
                JournalVoucher.voucher_number,
                JournalVoucher.voucher_type,
                JournalVoucher.voucher_date,
                JournalVoucher.narration.label("voucher_narration"),
            )
            .select_from(JournalEntryLine)
            .join(JournalVoucher, JournalEntryLine.voucher_id == JournalVoucher.id)
            .where(
                JournalEntryLine.account_id == account.id,
                JournalVoucher.status == VoucherStatus.POSTED.value,
                JournalVoucher.voucher_date >= start_date,
                JournalVoucher.voucher_date <= end_date,
            )
            .order_by(
                JournalVoucher.voucher_date,
                JournalVoucher.sequence_no,
                JournalEntryLine.line_no,
            )
        ).all()

        running = opening_balance
        total_debits = ZERO
        total_credits = ZERO
        transactions = []
        for row in rows:
            debit = row.debit_amount or ZERO
            credit = row.credit_amount or ZERO
            total_debits += debit
            total_credits += credit
            running += signed_balance(account_type, debit, credit)
            transactions.append(LedgerTransactionDTO(
                line_id=row.id,
                voucher_id=row.voucher_id,
                voucher_number=row.voucher_number,
                voucher_type=row.voucher_type,
                voucher_date=row.voucher_date,
                narration=row.narration or row.voucher_narration,
                debit_amount=debit,
                credit_amount=credit,
                running_balance=running,
            ))

        return LedgerReportDTO(
            account=AccountResponseDTO.model_validate(account),
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening_balance,
            transactions=transactions,
            total_debits=total_debits,
            total_credits=total_credits,
            closing_balance=opening_balance
            + signed_balance(account_type, total_debits, total_credits),
        )

    def get_cash_flow_report(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> CashFlowReportDTO:
        """Debits to Bank accounts are inflows, credits are outflows."""
        end_date = end_date or date.today()
        start_date = start_date or end_date.replace(day=1)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        rows = self.db.execute(
            select(
                JournalVoucher.id.label("voucher_id"),
                JournalVoucher.voucher_number,
                JournalVoucher.voucher_type,
                JournalVoucher.voucher_date,
                JournalVoucher.narration.label("voucher_narration"),
                JournalEntryLine.narration,
                JournalEntryLine.debit_amount,
                JournalEntryLine.credit_amount,
                LedgerAccount.id.label("account_id"),
                LedgerAccount.name.label("account_name"),
            )
            .select_from(JournalEntryLine)
            .join(JournalVoucher, JournalEntryLine.voucher_id == JournalVoucher.id)
            .join(LedgerAccount, JournalEntryLine.account_id == LedgerAccount.id)
            .where(
                LedgerAccount.account_type == AccountType.BANK.value,
                JournalVoucher.status == VoucherStatus.POSTED.value,
                JournalVoucher.voucher_date >= start_date,
                JournalVoucher.voucher_date <= end_date,
            )
            .order_by(
                JournalVoucher.voucher_date,
                JournalVoucher.sequence_no,
                JournalEntryLine.line_no,
            )
        ).all()

        by_type: dict[VoucherType, list[CashFlowEntryDTO]] = {vt: [] for vt in VoucherType}
        for row in rows:
            by_type[VoucherType(row.voucher_type)].append(CashFlowEntryDTO(
                voucher_id=row.voucher_id,
                voucher_number=row.voucher_number,
                voucher_date=row.voucher_date,
                account_id=row.account_id,
                account_name=row.account_name,
                narration=row.narration or row.voucher_narration,
                inflow=row.debit_amount or ZERO,
                outflow=row.credit_amount or ZERO,
            ))

        groups = []
        for voucher_type, entries in by_type.items():
            inflow = sum((e.inflow for e in entries), ZERO)
            outflow = sum((e.outflow for e in entries), ZERO)
            groups.append(CashFlowGroupDTO(
                voucher_type=voucher_type,
                inflow=inflow,
                outflow=outflow,
                net=inflow - outflow,
                transactions=entries,
            ))

        total_inflow = sum((g.inflow for g in groups), ZERO)
        total_outflow = sum((g.outflow for g in groups), ZERO)
        return CashFlowReportDTO(
            start_date=start_date,
            end_date=end_date,
            groups=groups,
            total_inflow=total_inflow,
            total_outflow=total_outflow,
            net_cash_flow=total_inflow - total_outflow,
        )

    def get_profit_loss(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> ProfitLossDTO:
        """
        Profit and loss for a date window.

        Customer accounts carry income (credits less debits); Direct and
        Indirect Expense accounts carry expenses (debits less credits).
        """
        end_date = end_date or date.today()
        start_date = start_date or end_date.replace(day=1)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        accounts = self._accounts()
        sums = self._account_sums(
            JournalVoucher.voucher_date >= start_date,
            JournalVoucher.voucher_date <= end_date,
        )
        income = build_statement_section(accounts, sums, INCOME_TYPES, BalanceSide.CREDIT)
        expenses = build_statement_section(accounts, sums, EXPENSE_TYPES, BalanceSide.DEBIT)
        return ProfitLossDTO(
            start_date=start_date,
            end_date=end_date,
            income=income,
            expenses=expenses,
            net_profit=income.total - expenses.total,
        )

    def get_balance_sheet(self, as_of_date: date | None = None) -> BalanceSheetDTO:
        """
        Assets and liabilities as of a date.

        Equity is the retained earnings derived from all income and expense
        posted up to as_of_date; it may be negative.
        """
        as_of_date = as_of_date or date.today()
        accounts = self._accounts()
        sums = self._account_sums(JournalVoucher.voucher_date <= as_of_date)

        assets = build_statement_section(accounts, sums, ASSET_TYPES, BalanceSide.DEBIT)
        liabilities = build_statement_section(accounts, sums, LIABILITY_TYPES, BalanceSide.CREDIT)
        retained = (
            build_statement_section(accounts, sums, INCOME_TYPES, BalanceSide.CREDIT).total
            - build_statement_section(accounts, sums, EXPENSE_TYPES, BalanceSide.DEBIT).total
        )
        equity = StatementSectionDTO(
            accounts=[StatementLineDTO(
                account_id=None,
                account_name=RETAINED_EARNINGS,
                account_type="Equity",
                amount=retained,
            )],
            total=retained,
        )
        return BalanceSheetDTO(
            as_of_date=as_of_date,
            assets=assets,
            liabilities=liabilities,
            equity=equity,
            total_liabilities_and_equity=liabilities.total + equity.total,
        )

    def get_integrity_check(
        self, cancel_event: threading.Event | None = None
    ) -> IntegrityReportDTO:
        """
        Recompute ledger consistency from scratch.

        All posted lines are streamed in a single statement and re-summed
        per voucher and per account. Findings are returned as data; nothing
        is corrected.

        Raises:
            IntegrityCheckInterrupted: cancel_event was set between vouchers
        """
        result = self.db.execute(
            select(
                JournalVoucher.id,
                JournalVoucher.voucher_number,
                JournalVoucher.total_amount,
                JournalEntryLine.account_id,
                JournalEntryLine.debit_amount,
                JournalEntryLine.credit_amount,
            )
            .select_from(JournalVoucher)
            .outerjoin(JournalEntryLine, JournalEntryLine.voucher_id == JournalVoucher.id)
            .where(JournalVoucher.status == VoucherStatus.POSTED.value)
            .order_by(JournalVoucher.id, JournalEntryLine.line_no)
            .execution_options(yield_per=STREAM_BATCH_SIZE)
        )

        issues: list[IntegrityViolation] = []
        sums: dict[int, tuple[Decimal, Decimal]] = {}
        vouchers_checked = 0
        lines_checked = 0

        try:
            for (voucher_id, voucher_number, total_amount), rows in groupby(
                result, key=lambda r: (r.id, r.voucher_number, r.total_amount)
            ):
                if cancel_event is not None and cancel_event.is_set():
                    raise IntegrityCheckInterrupted(vouchers_checked)

                lines = [
                    PostedLine(r.account_id, r.debit_amount or ZERO, r.credit_amount or ZERO)
                    for r in rows
                    if r.account_id is not None
                ]
                issues.extend(check_posted_voucher(
                    voucher_id, voucher_number, total_amount or ZERO, lines
                ))
                for line in lines:
                    debits, credits = sums.get(line.account_id, (ZERO, ZERO))
                    sums[line.account_id] = (
                        debits + line.debit_amount, credits + line.credit_amount
                    )
                vouchers_checked += 1
                lines_checked += len(lines)
        finally:
            result.close()

        # Read after the lines: an account posted to mid-check must still be known.
        accounts = self._accounts()
        trial_balance = build_trial_balance(accounts, sums, date.today())
        if not trial_balance.is_balanced:
            issues.append(IntegrityViolation(
                type="TRIAL_BALANCE_IMBALANCE",
                message=(
                    f"Trial balance does not balance: debits {trial_balance.total_debits:.2f}, "
                    f"credits {trial_balance.total_credits:.2f}"
                ),
                details={
                    "total_debits": str(trial_balance.total_debits),
                    "total_credits": str(trial_balance.total_credits),
                    "difference": str(trial_balance.difference),
                },
            ))

        if issues:
            logger.warning(
                "Ledger integrity check found issues",
                extra={
                    "issue_count": len(issues),
                    "issue_types": sorted({i.type for i in issues}),
                    "vouchers_checked": vouchers_checked,
                },
            )
        else:
            logger.info(
                "Ledger integrity check passed",
                extra={"vouchers_checked": vouchers_checked, "lines_checked": lines_checked},
            )

        return IntegrityReportDTO(
            is_valid=not issues,
            issues=[IntegrityViolationDTO.model_validate(i) for i in issues],
            trial_balance=trial_balance,
            vouchers_checked=vouchers_checked,
            lines_checked=lines_checked,
            checked_at=datetime.now(timezone.utc),
        )

    def _accounts(self) -> list[LedgerAccount]:
        return list(self.db.scalars(
            select(LedgerAccount).order_by(LedgerAccount.account_type, LedgerAccount.name)
        ).all())

    def _account_sums(self, *criteria, account_id: int | None = None) -> dict[int, tuple[Decimal, Decimal]]:
        query = (
            select(
                JournalEntryLine.account_id,
                func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
                func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
            )
            .select_from(JournalEntryLine)
            .join(JournalVoucher, JournalEntryLine.voucher_id == JournalVoucher.id)
            .where(JournalVoucher.status == VoucherStatus.POSTED.value, *criteria)
            .group_by(JournalEntryLine.account_id)
        )
        if account_id is not None:
            query = query.where(JournalEntryLine.account_id == account_id)
        return {
            acc_id: (ZERO + debits, ZERO + credits)
            for acc_id, debits, credits in self.db.execute(query)
        }
