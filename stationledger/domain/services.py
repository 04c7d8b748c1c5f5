"""
Domain Services - Double-entry rules that operate on plain snapshots.
Pure functions: no session, no clock, no side effects.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from .entities import (
    AccountRef,
    IntegrityViolation,
    PostedLine,
    ValidatedVoucher,
    VoucherLineDraft,
)
from .exceptions import InvalidLineError, UnbalancedVoucherError, ValidationError
from .value_objects import (
    MAX_AMOUNT,
    ZERO,
    AccountType,
    VoucherType,
    has_cent_precision,
    to_money,
)

MIN_LINES = 2

# Counterpart account types accepted by the convenience voucher builders.
PAYMENT_DEBIT_TYPES = frozenset({
    AccountType.DIRECT_EXPENSE,
    AccountType.INDIRECT_EXPENSE,
    AccountType.LIABILITY,
    AccountType.VENDOR,
})
RECEIPT_CREDIT_TYPES = frozenset({
    AccountType.CUSTOMER,
    AccountType.ASSET,
    AccountType.LIABILITY,
})


def validate_voucher(
    lines: Sequence[VoucherLineDraft],
    accounts: Mapping[int, AccountRef],
) -> ValidatedVoucher:
    """
    Check a draft voucher against the double-entry rules.

    Args:
        lines: Draft lines in submission order (line numbers are 1-based)
        accounts: Known accounts of the tenant keyed by id

    Raises:
        InvalidLineError: a line-level rule is broken
        UnbalancedVoucherError: sum(debits) != sum(credits), compared exactly
    """
    if len(lines) < MIN_LINES:
        raise InvalidLineError(
            f"at least {MIN_LINES} lines are required for double-entry, got {len(lines)}"
        )

    normalized: list[VoucherLineDraft] = []
    total_debits = ZERO
    total_credits = ZERO

    for line_no, line in enumerate(lines, start=1):
        debit = to_money(line.debit_amount)
        credit = to_money(line.credit_amount)

        if not (debit.is_finite() and credit.is_finite()):
            raise InvalidLineError("amounts must be finite numbers", line_no)
        if debit < 0 or credit < 0:
            raise InvalidLineError("amounts cannot be negative", line_no)
        if debit > MAX_AMOUNT or credit > MAX_AMOUNT:
            raise InvalidLineError(f"amounts cannot exceed {MAX_AMOUNT}", line_no)
        if debit > 0 and credit > 0:
            raise InvalidLineError("cannot have both debit and credit amounts", line_no)
        if debit == 0 and credit == 0:
            raise InvalidLineError("must have either a debit or a credit amount", line_no)
        if not (has_cent_precision(debit) and has_cent_precision(credit)):
            raise InvalidLineError("amounts can have at most 2 decimal places", line_no)

        account = accounts.get(line.account_id)
        if account is None:
            raise InvalidLineError(f"account {line.account_id} does not exist", line_no)
        if not account.is_active:
            raise InvalidLineError(f"account '{account.name}' is inactive", line_no)

        total_debits += debit
        total_credits += credit
        normalized.append(
            VoucherLineDraft(
                account_id=line.account_id,
                debit_amount=debit,
                credit_amount=credit,
                narration=line.narration,
            )
        )

    if total_debits == ZERO:
        raise InvalidLineError("voucher needs at least one debit line")
    if total_credits == ZERO:
        raise InvalidLineError("voucher needs at least one credit line")
    if total_debits != total_credits:
        raise UnbalancedVoucherError(total_debits, total_credits)
    if total_debits > MAX_AMOUNT:
        raise InvalidLineError(f"voucher total cannot exceed {MAX_AMOUNT}")

    return ValidatedVoucher(
        lines=tuple(normalized),
        total_debits=total_debits,
        total_credits=total_credits,
    )


def pair_lines(
    voucher_type: VoucherType,
    amount: Decimal,
    counterpart: AccountRef,
    bank: AccountRef,
    narration: str | None = None,
) -> list[VoucherLineDraft]:
    """
    Build the default two-line pairing for a Payment or Receipt.

    Payment: Dr counterpart (expense/liability/vendor), Cr bank.
    Receipt: Dr bank, Cr counterpart (customer/asset/liability).
    """
    if bank.account_type != AccountType.BANK:
        raise ValidationError(
            f"Account '{bank.name}' is not a Bank account", field="bank_account_id"
        )

    if voucher_type == VoucherType.PAYMENT:
        if counterpart.account_type not in PAYMENT_DEBIT_TYPES:
            raise ValidationError(
                f"Payment cannot debit a {counterpart.account_type.value} account",
                field="account_id",
            )
        return [
            VoucherLineDraft(counterpart.id, debit_amount=amount, narration=narration),
            VoucherLineDraft(bank.id, credit_amount=amount, narration=narration),
        ]

    if voucher_type == VoucherType.RECEIPT:
        if counterpart.account_type not in RECEIPT_CREDIT_TYPES:
            raise ValidationError(
                f"Receipt cannot credit a {counterpart.account_type.value} account",
                field="account_id",
            )
        return [
            VoucherLineDraft(bank.id, debit_amount=amount, narration=narration),
            VoucherLineDraft(counterpart.id, credit_amount=amount, narration=narration),
        ]

    raise ValidationError(f"No default pairing for {voucher_type.value} vouchers")


def check_posted_voucher(
    voucher_id: int,
    voucher_number: str,
    total_amount: Decimal,
    lines: Iterable[PostedLine],
) -> list[IntegrityViolation]:
    """Re-verify a persisted voucher from its own lines."""
    findings: list[IntegrityViolation] = []
    debits = ZERO
    credits = ZERO
    count = 0

    for count, line in enumerate(lines, start=1):
        debit = line.debit_amount or ZERO
        credit = line.credit_amount or ZERO
        if debit < 0 or credit < 0 or (debit > 0) == (credit > 0):
            findings.append(IntegrityViolation(
                type="INVALID_LINE",
                message=(
                    f"Voucher {voucher_number} line {count} has debit {debit:.2f} "
                    f"and credit {credit:.2f}"
                ),
                voucher_id=voucher_id,
                voucher_number=voucher_number,
                details={"line_no": count, "account_id": line.account_id},
            ))
        debits += debit
        credits += credit

    if count < MIN_LINES:
        findings.append(IntegrityViolation(
            type="TOO_FEW_LINES",
            message=f"Voucher {voucher_number} has {count} lines",
            voucher_id=voucher_id,
            voucher_number=voucher_number,
            details={"line_count": count},
        ))

    if debits != credits:
        findings.append(IntegrityViolation(
            type="VOUCHER_IMBALANCE",
            message=(
                f"Voucher {voucher_number}: debits {debits:.2f} do not equal "
                f"credits {credits:.2f}, difference {abs(debits - credits):.2f}"
            ),
            voucher_id=voucher_id,
            voucher_number=voucher_number,
            details={
                "total_debits": str(debits),
                "total_credits": str(credits),
                "difference": str(debits - credits),
            },
        ))

    if total_amount != debits:
        findings.append(IntegrityViolation(
            type="TOTAL_MISMATCH",
            message=(
                f"Voucher {voucher_number}: stored total {total_amount:.2f} "
                f"differs from summed debits {debits:.2f}"
            ),
            voucher_id=voucher_id,
            voucher_number=voucher_number,
            details={"stored_total": str(total_amount), "summed_debits": str(debits)},
        ))

    return findings
