"""
API DTOs - Data Transfer Objects for ledger requests/responses.

Amount fields are deliberately unconstrained here: the domain rules report
negative, zero and over-precise amounts with the offending line number.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from stationledger.domain.value_objects import (
    AccountStatus,
    AccountType,
    BalanceSide,
    VoucherStatus,
    VoucherType,
)

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Paginated result."""
    items: list[T]
    total: int
    page: int
    limit: int


# --- Accounts ---

class AccountCreateDTO(BaseModel):
    """DTO - Create a ledger account."""
    name: str = Field(..., description="Account name, unique within the tenant")
    account_type: AccountType = Field(..., description="Account classification")
    status: AccountStatus = Field(AccountStatus.ACTIVE, description="active or inactive")
    description: str | None = Field(None, description="Optional description")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "HDFC Current Account",
            "account_type": "Bank",
            "description": "Settlement account for card sales",
        }
    })


class AccountUpdateDTO(BaseModel):
    """DTO - Partial account update. Unset fields are left unchanged."""
    name: str | None = None
    account_type: AccountType | None = None
    status: AccountStatus | None = None
    description: str | None = None
    is_system_account: bool | None = None


class AccountResponseDTO(BaseModel):
    id: int
    name: str
    account_type: AccountType
    is_system_account: bool
    status: AccountStatus
    description: str | None
    created_by: str | None
    updated_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountBalanceDTO(BaseModel):
    """Balance of one account as of a date."""
    account_id: int
    account_name: str
    account_type: AccountType
    natural_side: BalanceSide
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal = Field(..., description="Signed, on the natural side")
    amount: Decimal = Field(..., description="Absolute value of balance")
    balance_type: BalanceSide = Field(..., description="Side on which amount sits")
    as_of_date: date


class AccountProtectionDTO(BaseModel):
    account_id: int
    protected: bool
    reason: str
    can_modify: bool
    can_delete: bool
    can_deactivate: bool
    line_count: int


# --- Vouchers ---

class VoucherLineCreateDTO(BaseModel):
    """DTO - One debit or credit line."""
    account_id: int = Field(..., description="Ledger account id")
    debit_amount: Decimal = Field(Decimal("0"), description="Debit amount")
    credit_amount: Decimal = Field(Decimal("0"), description="Credit amount")
    narration: str | None = Field(None, max_length=200, description="Line narration")


class VoucherCreateDTO(BaseModel):
    """DTO - Create a journal voucher."""
    voucher_type: VoucherType = Field(..., description="Payment, Receipt or Journal")
    voucher_date: date = Field(..., description="Voucher date")
    reference_number: str | None = Field(None, max_length=50, description="Cheque/invoice number")
    narration: str | None = Field(None, description="Narration, at most 500 characters")
    lines: list[VoucherLineCreateDTO] = Field(..., description="Debit and credit lines")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "voucher_type": "Journal",
            "voucher_date": "2026-10-01",
            "narration": "Fuel purchase from depot",
            "reference_number": "INV-8812",
            "lines": [
                {"account_id": 4, "debit_amount": "5000.00"},
                {"account_id": 2, "credit_amount": "5000.00"},
            ],
        }
    })


class QuickVoucherDTO(BaseModel):
    """DTO - Payment or Receipt with default bank pairing."""
    voucher_date: date
    amount: Decimal
    account_id: int = Field(..., description="Counterpart account (expense/vendor or customer)")
    bank_account_id: int | None = Field(None, description="Defaults to the system Bank account")
    reference_number: str | None = Field(None, max_length=50)
    narration: str | None = None


class JournalVoucherDTO(BaseModel):
    voucher_date: date
    reference_number: str | None = Field(None, max_length=50)
    narration: str | None = None
    lines: list[VoucherLineCreateDTO]


class VoucherLineResponseDTO(BaseModel):
    id: int
    line_no: int
    account_id: int
    account_name: str | None = None
    debit_amount: Decimal
    credit_amount: Decimal
    narration: str | None


class VoucherResponseDTO(BaseModel):
    id: int
    voucher_number: str
    sequence_no: int
    voucher_type: VoucherType
    voucher_date: date
    reference_number: str | None
    narration: str | None
    total_amount: Decimal
    status: VoucherStatus
    created_by: str | None
    updated_by: str | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    created_at: datetime
    lines: list[VoucherLineResponseDTO] = []


class VoucherValidationDTO(BaseModel):
    """DTO - Outcome of a dry-run validation; nothing is posted."""
    is_valid: bool = True
    voucher_type: VoucherType
    total_debits: Decimal
    total_credits: Decimal
    total_amount: Decimal
    line_count: int


# --- Reports ---

class TrialBalanceRowDTO(BaseModel):
    account_id: int
    account_name: str
    account_type: AccountType
    status: AccountStatus
    natural_side: BalanceSide
    debit: Decimal
    credit: Decimal
    amount: Decimal
    balance_type: BalanceSide


class TrialBalanceDTO(BaseModel):
    """DTO - Trial balance."""
    as_of_date: date
    accounts: list[TrialBalanceRowDTO]
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool


class LedgerTransactionDTO(BaseModel):
    line_id: int
    voucher_id: int
    voucher_number: str
    voucher_type: VoucherType
    voucher_date: date
    narration: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    running_balance: Decimal


class LedgerReportDTO(BaseModel):
    """DTO - Per-account ledger statement."""
    account: AccountResponseDTO
    start_date: date
    end_date: date
    opening_balance: Decimal
    transactions: list[LedgerTransactionDTO]
    total_debits: Decimal
    total_credits: Decimal
    closing_balance: Decimal


class CashFlowEntryDTO(BaseModel):
    voucher_id: int
    voucher_number: str
    voucher_date: date
    account_id: int
    account_name: str
    narration: str | None
    inflow: Decimal
    outflow: Decimal


class CashFlowGroupDTO(BaseModel):
    voucher_type: VoucherType
    inflow: Decimal
    outflow: Decimal
    net: Decimal
    transactions: list[CashFlowEntryDTO]


class CashFlowReportDTO(BaseModel):
    """DTO - Movements through Bank accounts."""
    start_date: date
    end_date: date
    groups: list[CashFlowGroupDTO]
    total_inflow: Decimal
    total_outflow: Decimal
    net_cash_flow: Decimal


class StatementLineDTO(BaseModel):
    account_id: int | None
    account_name: str
    account_type: str
    amount: Decimal


class StatementSectionDTO(BaseModel):
    accounts: list[StatementLineDTO] = []
    total: Decimal = Decimal("0")


class ProfitLossDTO(BaseModel):
    """DTO - Income (Customer accounts) against Direct and Indirect Expense."""
    start_date: date
    end_date: date
    income: StatementSectionDTO
    expenses: StatementSectionDTO
    net_profit: Decimal


class BalanceSheetDTO(BaseModel):
    """DTO - Assets against liabilities plus derived retained earnings."""
    as_of_date: date
    assets: StatementSectionDTO
    liabilities: StatementSectionDTO
    equity: StatementSectionDTO
    total_liabilities_and_equity: Decimal


class IntegrityViolationDTO(BaseModel):
    type: str
    message: str
    voucher_id: int | None = None
    voucher_number: str | None = None
    details: dict = {}

    model_config = ConfigDict(from_attributes=True)


class IntegrityReportDTO(BaseModel):
    """DTO - Whole-ledger integrity check."""
    is_valid: bool
    issues: list[IntegrityViolationDTO]
    trial_balance: TrialBalanceDTO
    vouchers_checked: int
    lines_checked: int
    checked_at: datetime


# --- Integration events ---

class PurchaseEventDTO(BaseModel):
    """A recorded purchase from the purchases module."""
    purchase_id: int | str
    vendor_name: str
    invoice_number: str
    invoice_date: date
    total_amount: Decimal
    cgst_amount: Decimal = Decimal("0")
    sgst_amount: Decimal = Decimal("0")
    igst_amount: Decimal = Decimal("0")
    inventory_account_id: int | None = None
    narration: str | None = None


class SaleEventDTO(BaseModel):
    """A completed sale from the sales module."""
    sale_date: date
    bill_mode: str = Field("Cash", description="Cash, Card, UPI, Credit ...")
    party_name: str = Field("Cash", description="Customer name or Cash")
    invoice_value: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal = Decimal("0")
    sgst_amount: Decimal = Decimal("0")
    igst_amount: Decimal = Decimal("0")


class SalesBatchDTO(BaseModel):
    sales: list[SaleEventDTO]
    revenue_account_id: int | None = None
    narration: str | None = None


class CustomerPaymentEventDTO(BaseModel):
    payment_id: int | str | None = None
    customer_name: str
    amount: Decimal
    payment_date: date
    payment_method: str = "Cash"
    reference_number: str | None = None
    narration: str | None = None
