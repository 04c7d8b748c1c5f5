"""
Unit tests - Domain layer double-entry rules.
Testing: voucher validation, default pairing, posted-voucher re-checks, money helpers.
"""

from decimal import Decimal

import pytest

from stationledger.domain.entities import AccountRef, PostedLine, VoucherLineDraft
from stationledger.domain.exceptions import (
    InvalidLineError,
    UnbalancedVoucherError,
    ValidationError,
)
from stationledger.domain.services import check_posted_voucher, pair_lines, validate_voucher
from stationledger.domain.value_objects import (
    MAX_AMOUNT,
    AccountStatus,
    AccountType,
    BalanceSide,
    VoucherType,
    balance_type,
    has_cent_precision,
    natural_side,
    signed_balance,
    to_money,
)

BANK = AccountRef(1, "Bank Account", AccountType.BANK)
FUEL = AccountRef(2, "Fuel Purchase", AccountType.DIRECT_EXPENSE)
VENDOR = AccountRef(3, "Indian Oil Depot", AccountType.VENDOR)
CUSTOMER = AccountRef(4, "Sharma Transport", AccountType.CUSTOMER)
DORMANT = AccountRef(5, "Old Tank Loan", AccountType.LIABILITY, AccountStatus.INACTIVE)

ACCOUNTS = {a.id: a for a in (BANK, FUEL, VENDOR, CUSTOMER, DORMANT)}


def dr(account: AccountRef, amount: str) -> VoucherLineDraft:
    return VoucherLineDraft(account.id, debit_amount=Decimal(amount))


def cr(account: AccountRef, amount: str) -> VoucherLineDraft:
    return VoucherLineDraft(account.id, credit_amount=Decimal(amount))


class TestValidateVoucher:
    """Double-entry rules applied before posting."""

    def test_balanced_voucher_returns_totals(self):
        result = validate_voucher([dr(FUEL, "5000.00"), cr(BANK, "5000.00")], ACCOUNTS)
        assert result.total_debits == Decimal("5000.00")
        assert result.total_credits == Decimal("5000.00")
        assert result.total_amount == Decimal("5000.00")
        assert [line.account_id for line in result.lines] == [FUEL.id, BANK.id]

    def test_split_lines_balance(self):
        lines = [dr(FUEL, "4237.29"), dr(VENDOR, "762.71"), cr(BANK, "5000.00")]
        assert validate_voucher(lines, ACCOUNTS).total_debits == Decimal("5000.00")

    def test_decimal_equality_is_exact(self):
        """0.10 + 0.20 == 0.30 exactly; no float drift."""
        lines = [dr(FUEL, "0.10"), dr(FUEL, "0.20"), cr(BANK, "0.30")]
        assert validate_voucher(lines, ACCOUNTS).total_credits == Decimal("0.30")

    def test_unbalanced_voucher_names_totals(self):
        with pytest.raises(UnbalancedVoucherError) as exc:
            validate_voucher([dr(FUEL, "100.00"), cr(BANK, "99.99")], ACCOUNTS)
        assert "100.00" in exc.value.message
        assert "99.99" in exc.value.message
        assert exc.value.details["difference"] == "0.01"

    def test_unbalanced_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            validate_voucher([dr(FUEL, "1.00"), cr(BANK, "2.00")], ACCOUNTS)

    def test_single_line_rejected(self):
        with pytest.raises(InvalidLineError, match="at least 2 lines"):
            validate_voucher([dr(FUEL, "10.00")], ACCOUNTS)

    def test_no_lines_rejected(self):
        with pytest.raises(InvalidLineError):
            validate_voucher([], ACCOUNTS)

    def test_both_sides_on_one_line_rejected(self):
        lines = [
            dr(FUEL, "10.00"),
            VoucherLineDraft(BANK.id, debit_amount=Decimal("5"), credit_amount=Decimal("10")),
        ]
        with pytest.raises(InvalidLineError) as exc:
            validate_voucher(lines, ACCOUNTS)
        assert exc.value.details["line_no"] == 2
        assert exc.value.message.startswith("Line 2:")

    def test_zero_line_rejected(self):
        lines = [dr(FUEL, "10.00"), cr(BANK, "10.00"), VoucherLineDraft(VENDOR.id)]
        with pytest.raises(InvalidLineError) as exc:
            validate_voucher(lines, ACCOUNTS)
        assert exc.value.details["line_no"] == 3

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidLineError, match="negative"):
            validate_voucher([dr(FUEL, "-10.00"), cr(BANK, "-10.00")], ACCOUNTS)

    def test_sub_cent_amount_rejected(self):
        with pytest.raises(InvalidLineError, match="2 decimal places"):
            validate_voucher([dr(FUEL, "100.005"), cr(BANK, "100.005")], ACCOUNTS)

    def test_unknown_account_rejected(self):
        with pytest.raises(InvalidLineError, match="does not exist"):
            validate_voucher([dr(FUEL, "10.00"), VoucherLineDraft(99, credit_amount=Decimal("10"))],
                             ACCOUNTS)

    def test_inactive_account_rejected(self):
        with pytest.raises(InvalidLineError, match="inactive"):
            validate_voucher([dr(FUEL, "10.00"), cr(DORMANT, "10.00")], ACCOUNTS)

    def test_debits_only_rejected(self):
        with pytest.raises(InvalidLineError, match="credit line"):
            validate_voucher([dr(FUEL, "10.00"), dr(VENDOR, "10.00")], ACCOUNTS)

    def test_float_amounts_rejected(self):
        with pytest.raises(TypeError):
            validate_voucher(
                [VoucherLineDraft(FUEL.id, debit_amount=10.1), cr(BANK, "10.10")], ACCOUNTS
            )

    def test_amount_above_column_capacity_rejected(self):
        with pytest.raises(InvalidLineError, match="cannot exceed") as exc:
            validate_voucher(
                [dr(FUEL, "1000000000000.00"), cr(BANK, "1000000000000.00")], ACCOUNTS
            )
        assert exc.value.details["line_no"] == 1

    def test_largest_storable_amount_accepted(self):
        lines = [dr(FUEL, "999999999999.99"), cr(BANK, "999999999999.99")]
        assert validate_voucher(lines, ACCOUNTS).total_amount == MAX_AMOUNT

    def test_total_above_column_capacity_rejected(self):
        lines = [
            dr(FUEL, "999999999999.99"),
            dr(VENDOR, "0.01"),
            cr(BANK, "999999999999.99"),
            cr(BANK, "0.01"),
        ]
        with pytest.raises(InvalidLineError, match="voucher total"):
            validate_voucher(lines, ACCOUNTS)

    def test_huge_exponent_rejected_as_line_error(self):
        with pytest.raises(InvalidLineError, match="cannot exceed"):
            validate_voucher([dr(FUEL, "1E+40"), cr(BANK, "1E+40")], ACCOUNTS)

    def test_non_finite_amount_rejected(self):
        with pytest.raises(InvalidLineError, match="finite"):
            validate_voucher([dr(FUEL, "Infinity"), cr(BANK, "Infinity")], ACCOUNTS)


class TestPairLines:
    """Default two-line pairing for Payment and Receipt vouchers."""

    def test_payment_debits_expense_and_credits_bank(self):
        debit, credit = pair_lines(VoucherType.PAYMENT, Decimal("750.00"), FUEL, BANK)
        assert (debit.account_id, debit.debit_amount) == (FUEL.id, Decimal("750.00"))
        assert (credit.account_id, credit.credit_amount) == (BANK.id, Decimal("750.00"))

    def test_payment_to_vendor(self):
        debit, _ = pair_lines(VoucherType.PAYMENT, Decimal("1.00"), VENDOR, BANK)
        assert debit.account_id == VENDOR.id

    def test_receipt_debits_bank_and_credits_customer(self):
        debit, credit = pair_lines(VoucherType.RECEIPT, Decimal("300.00"), CUSTOMER, BANK)
        assert debit.account_id == BANK.id
        assert credit.account_id == CUSTOMER.id

    def test_payment_rejects_customer_counterpart(self):
        with pytest.raises(ValidationError) as exc:
            pair_lines(VoucherType.PAYMENT, Decimal("1.00"), CUSTOMER, BANK)
        assert exc.value.details["field"] == "account_id"

    def test_receipt_rejects_expense_counterpart(self):
        with pytest.raises(ValidationError):
            pair_lines(VoucherType.RECEIPT, Decimal("1.00"), FUEL, BANK)

    def test_bank_side_must_be_bank_type(self):
        with pytest.raises(ValidationError) as exc:
            pair_lines(VoucherType.PAYMENT, Decimal("1.00"), FUEL, VENDOR)
        assert exc.value.details["field"] == "bank_account_id"

    def test_journal_has_no_default_pairing(self):
        with pytest.raises(ValidationError):
            pair_lines(VoucherType.JOURNAL, Decimal("1.00"), FUEL, BANK)


class TestCheckPostedVoucher:
    """Re-verification of persisted vouchers from their own lines."""

    def test_consistent_voucher_has_no_findings(self):
        lines = [PostedLine(2, Decimal("500.00"), Decimal("0")), PostedLine(1, Decimal("0"), Decimal("500.00"))]
        assert check_posted_voucher(1, "JV-000001", Decimal("500.00"), lines) == []

    def test_imbalance_reported_with_difference(self):
        lines = [PostedLine(2, Decimal("400.00"), Decimal("0")), PostedLine(1, Decimal("0"), Decimal("500.00"))]
        findings = check_posted_voucher(7, "JV-000007", Decimal("500.00"), lines)
        types = {f.type for f in findings}
        assert types == {"VOUCHER_IMBALANCE", "TOTAL_MISMATCH"}
        imbalance = next(f for f in findings if f.type == "VOUCHER_IMBALANCE")
        assert imbalance.voucher_id == 7
        assert imbalance.details["difference"] == "-100.00"

    def test_line_with_both_sides_reported(self):
        lines = [PostedLine(2, Decimal("5.00"), Decimal("5.00")), PostedLine(1, Decimal("0"), Decimal("0"))]
        findings = check_posted_voucher(1, "JV-000001", Decimal("5.00"), lines)
        assert [f.type for f in findings].count("INVALID_LINE") == 2

    def test_too_few_lines_reported(self):
        findings = check_posted_voucher(1, "JV-000001", Decimal("0.00"), [])
        assert [f.type for f in findings] == ["TOO_FEW_LINES"]


class TestValueObjects:
    """Natural balance side and money helpers."""

    @pytest.mark.parametrize("account_type,side", [
        (AccountType.ASSET, BalanceSide.DEBIT),
        (AccountType.BANK, BalanceSide.DEBIT),
        (AccountType.CUSTOMER, BalanceSide.DEBIT),
        (AccountType.DIRECT_EXPENSE, BalanceSide.DEBIT),
        (AccountType.INDIRECT_EXPENSE, BalanceSide.DEBIT),
        (AccountType.LIABILITY, BalanceSide.CREDIT),
        (AccountType.VENDOR, BalanceSide.CREDIT),
    ])
    def test_natural_side(self, account_type, side):
        assert natural_side(account_type) is side

    def test_signed_balance_on_natural_side(self):
        assert signed_balance(AccountType.BANK, Decimal("100"), Decimal("30")) == Decimal("70")
        assert signed_balance(AccountType.VENDOR, Decimal("100"), Decimal("30")) == Decimal("-70")

    def test_negative_balance_flips_side(self):
        assert balance_type(AccountType.BANK, Decimal("-5000.00")) is BalanceSide.CREDIT
        assert balance_type(AccountType.VENDOR, Decimal("-1.00")) is BalanceSide.DEBIT
        assert balance_type(AccountType.VENDOR, Decimal("0")) is BalanceSide.CREDIT

    def test_to_money(self):
        assert to_money("12.50") == Decimal("12.50")
        assert to_money(None) == Decimal("0")
        with pytest.raises(TypeError):
            to_money(12.5)
        with pytest.raises(ValueError):
            to_money("twelve")

    def test_cent_precision(self):
        assert has_cent_precision(Decimal("10.10"))
        assert has_cent_precision(Decimal("10"))
        assert not has_cent_precision(Decimal("10.101"))
