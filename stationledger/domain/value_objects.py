"""
Domain Layer - Value objects for the general ledger.
Enumerations and fixed-point money helpers shared by every tenant.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest value a Numeric(14, 2) amount column can hold.
MAX_AMOUNT = Decimal("999999999999.99")


class AccountType(str, Enum):
    """Chart of accounts classification."""
    DIRECT_EXPENSE = "Direct Expense"
    INDIRECT_EXPENSE = "Indirect Expense"
    ASSET = "Asset"
    LIABILITY = "Liability"
    CUSTOMER = "Customer"
    VENDOR = "Vendor"
    BANK = "Bank"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class VoucherType(str, Enum):
    """Journal voucher kinds."""
    PAYMENT = "Payment"
    RECEIPT = "Receipt"
    JOURNAL = "Journal"


class VoucherStatus(str, Enum):
    """Posted -> Cancelled is the only transition."""
    POSTED = "Posted"
    CANCELLED = "Cancelled"


class BalanceSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


DEBIT_NATURAL_TYPES = frozenset({
    AccountType.ASSET,
    AccountType.DIRECT_EXPENSE,
    AccountType.INDIRECT_EXPENSE,
    AccountType.BANK,
    AccountType.CUSTOMER,
})

CREDIT_NATURAL_TYPES = frozenset({
    AccountType.LIABILITY,
    AccountType.VENDOR,
})

VOUCHER_NUMBER_PREFIX = {
    VoucherType.PAYMENT: "PV",
    VoucherType.RECEIPT: "RV",
    VoucherType.JOURNAL: "JV",
}


def natural_side(account_type: AccountType | str) -> BalanceSide:
    """Side on which an account type normally carries its balance."""
    if AccountType(account_type) in CREDIT_NATURAL_TYPES:
        return BalanceSide.CREDIT
    return BalanceSide.DEBIT


def to_money(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce a value to a Decimal amount without rounding.

    Floats are rejected: monetary input must arrive as Decimal, int or str.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    try:
        return Decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc


def quantize(amount: Decimal) -> Decimal:
    """Round to cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def has_cent_precision(amount: Decimal) -> bool:
    """True when the amount has at most two decimal places."""
    return amount == amount.quantize(CENT)


def signed_balance(account_type: AccountType | str, debits: Decimal, credits: Decimal) -> Decimal:
    """Net movement expressed on the account's natural side."""
    if natural_side(account_type) is BalanceSide.DEBIT:
        return debits - credits
    return credits - debits


def balance_type(account_type: AccountType | str, balance: Decimal) -> BalanceSide:
    """Side on which the non-negative representation of `balance` sits."""
    side = natural_side(account_type)
    if balance >= 0:
        return side
    return BalanceSide.CREDIT if side is BalanceSide.DEBIT else BalanceSide.DEBIT
