"""
Integration Adapters - turn business events from other station modules
into ledger vouchers.

Every event is posted through VoucherService.create_voucher, so events get
exactly the same validation as manual vouchers: a sale whose taxable value
and taxes do not add up to the invoice value is rejected as unbalanced.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stationledger.application.accounts import ChartOfAccountsService
from stationledger.application.dto.ledger_dto import (
    AccountCreateDTO,
    AccountResponseDTO,
    CustomerPaymentEventDTO,
    PurchaseEventDTO,
    SalesBatchDTO,
    SaleEventDTO,
    VoucherCreateDTO,
    VoucherLineCreateDTO,
    VoucherResponseDTO,
)
from stationledger.application.vouchers import VoucherService, voucher_to_dto
from stationledger.domain.exceptions import ValidationError
from stationledger.domain.value_objects import ZERO, AccountType, VoucherType, to_money
from stationledger.infrastructure.database.models import JournalVoucher, LedgerAccount
from stationledger.infrastructure.tenancy.cache import TenantDomainCache

logger = logging.getLogger(__name__)

CASH_ACCOUNT = ("Cash on Hand", AccountType.ASSET)
BANK_ACCOUNT = ("Bank Account", AccountType.BANK)
INVENTORY_ACCOUNT = ("Inventory", AccountType.ASSET)
SALES_REVENUE_ACCOUNT = ("Sales Revenue", AccountType.CUSTOMER)

GST_INPUT_ACCOUNTS = {
    "cgst": ("CGST Input", AccountType.ASSET),
    "sgst": ("SGST Input", AccountType.ASSET),
    "igst": ("IGST Input", AccountType.ASSET),
}
GST_PAYABLE_ACCOUNTS = {
    "cgst": ("CGST Payable", AccountType.LIABILITY),
    "sgst": ("SGST Payable", AccountType.LIABILITY),
    "igst": ("IGST Payable", AccountType.LIABILITY),
}

LINE_NARRATION_MAX_LENGTH = 200


def post_voucher_from_event(
    cache: TenantDomainCache,
    tenant_key: str,
    draft: VoucherCreateDTO,
    actor_id: str | None = None,
) -> VoucherResponseDTO:
    """Resolve the tenant and post a voucher on its behalf."""
    domain = cache.resolve(tenant_key)
    with domain.session() as db:
        voucher = VoucherService(db, actor_id).create_voucher(draft)
        return voucher_to_dto(voucher)


def _line(account: LedgerAccount, debit: Decimal = ZERO, credit: Decimal = ZERO,
          narration: str | None = None) -> VoucherLineCreateDTO:
    if narration:
        narration = narration[:LINE_NARRATION_MAX_LENGTH]
    return VoucherLineCreateDTO(
        account_id=account.id,
        debit_amount=debit,
        credit_amount=credit,
        narration=narration,
    )


class LedgerIntegrationService:
    """Posting hooks for purchases, sales and customer payments."""

    def __init__(self, db: Session, actor_id: str | None = None):
        self.db = db
        self.actor_id = actor_id
        self.accounts = ChartOfAccountsService(db, actor_id)
        self.vouchers = VoucherService(db, actor_id)

    def post_purchase(self, event: PurchaseEventDTO) -> JournalVoucher:
        """
        Dr Inventory (taxable value), Dr GST input, Cr Vendor (invoice total).
        """
        vendor = self.get_or_create_account(event.vendor_name, AccountType.VENDOR)
        if event.inventory_account_id is not None:
            inventory = self.accounts.get_account(event.inventory_account_id)
        else:
            inventory = self.get_or_create_account(*INVENTORY_ACCOUNT)

        total = to_money(event.total_amount)
        taxes = {
            "cgst": to_money(event.cgst_amount),
            "sgst": to_money(event.sgst_amount),
            "igst": to_money(event.igst_amount),
        }
        taxable = total - sum(taxes.values(), ZERO)
        description = f"Purchase from {vendor.name} - {event.invoice_number}"

        lines = [_line(inventory, debit=taxable, narration=description)]
        for tax, amount in taxes.items():
            if amount > 0:
                account = self.get_or_create_account(*GST_INPUT_ACCOUNTS[tax])
                lines.append(_line(
                    account, debit=amount,
                    narration=f"{tax.upper()} on purchase - {event.invoice_number}",
                ))
        lines.append(_line(vendor, credit=total, narration=description))

        voucher = self.vouchers.create_voucher(VoucherCreateDTO(
            voucher_type=VoucherType.JOURNAL,
            voucher_date=event.invoice_date,
            reference_number=event.invoice_number,
            narration=event.narration or f"Purchase transaction - {event.invoice_number}",
            lines=lines,
        ))
        logger.info(
            "Posted purchase",
            extra={"purchase_id": event.purchase_id, "voucher_number": voucher.voucher_number},
        )
        return voucher

    def post_sales(self, batch: SalesBatchDTO) -> list[JournalVoucher]:
        """
        One voucher per (bill mode, party) group:
        Dr Cash on Hand or Bank, Cr Sales Revenue (taxable), Cr GST payable.

        Groups post independently; a rejected group does not undo earlier ones.
        """
        if not batch.sales:
            raise ValidationError("At least one sale is required", field="sales")

        if batch.revenue_account_id is not None:
            revenue = self.accounts.get_account(batch.revenue_account_id)
        else:
            revenue = self.get_or_create_account(*SALES_REVENUE_ACCOUNT)

        groups: dict[tuple[str, str], list[SaleEventDTO]] = {}
        for sale in batch.sales:
            key = (sale.bill_mode or "Cash", sale.party_name or "Cash")
            groups.setdefault(key, []).append(sale)

        vouchers = []
        for (bill_mode, party), sales in groups.items():
            payment = self.get_or_create_account(
                *(CASH_ACCOUNT if bill_mode == "Cash" else BANK_ACCOUNT)
            )
            invoice_value = sum((to_money(s.invoice_value) for s in sales), ZERO)
            taxable_value = sum((to_money(s.taxable_value) for s in sales), ZERO)
            taxes = {
                "cgst": sum((to_money(s.cgst_amount) for s in sales), ZERO),
                "sgst": sum((to_money(s.sgst_amount) for s in sales), ZERO),
                "igst": sum((to_money(s.igst_amount) for s in sales), ZERO),
            }
            count = len(sales)

            lines = [
                _line(payment, debit=invoice_value,
                      narration=f"Sales receipt - {bill_mode} - {party} - {count} transactions"),
                _line(revenue, credit=taxable_value,
                      narration=f"Sales revenue - {count} transactions"),
            ]
            for tax, amount in taxes.items():
                if amount > 0:
                    account = self.get_or_create_account(*GST_PAYABLE_ACCOUNTS[tax])
                    lines.append(_line(
                        account, credit=amount,
                        narration=f"{tax.upper()} on sales - {count} transactions",
                    ))

            sale_date = sales[0].sale_date
            vouchers.append(self.vouchers.create_voucher(VoucherCreateDTO(
                voucher_type=VoucherType.JOURNAL,
                voucher_date=sale_date,
                reference_number=f"SALES-{sale_date.isoformat()}",
                narration=batch.narration or f"Sales transaction - {bill_mode} - {count} items",
                lines=lines,
            )))

        logger.info(
            "Posted sales",
            extra={"sale_count": len(batch.sales), "voucher_count": len(vouchers)},
        )
        return vouchers

    def post_customer_payment(self, event: CustomerPaymentEventDTO) -> JournalVoucher:
        """Receipt: Dr Cash on Hand or Bank, Cr Customer."""
        customer = self.get_or_create_account(event.customer_name, AccountType.CUSTOMER)
        payment = self.get_or_create_account(
            *(CASH_ACCOUNT if event.payment_method == "Cash" else BANK_ACCOUNT)
        )
        amount = to_money(event.amount)
        description = f"Payment received from {customer.name}"

        voucher = self.vouchers.create_voucher(VoucherCreateDTO(
            voucher_type=VoucherType.RECEIPT,
            voucher_date=event.payment_date,
            reference_number=event.reference_number,
            narration=event.narration or f"Customer payment - {customer.name}",
            lines=[
                _line(payment, debit=amount, narration=description),
                _line(customer, credit=amount, narration=description),
            ],
        ))
        logger.info(
            "Posted customer payment",
            extra={"payment_id": event.payment_id, "voucher_number": voucher.voucher_number},
        )
        return voucher

    def get_or_create_account(self, name: str, account_type: AccountType) -> LedgerAccount:
        """Find an account by name, creating it with the given type if absent."""
        name = name.strip()
        account = self.db.scalars(
            select(LedgerAccount).where(LedgerAccount.name == name)
        ).first()
        if account is not None:
            if account.account_type != AccountType(account_type).value:
                raise ValidationError(
                    f"Account '{name}' exists with type {account.account_type}, "
                    f"expected {AccountType(account_type).value}",
                    field="account_type",
                )
            return account
        return self.accounts.create_account(
            AccountCreateDTO(name=name, account_type=account_type)
        )

    def get_available_accounts(self) -> dict[str, list[AccountResponseDTO]]:
        """Active accounts grouped by type, for mapping pickers."""
        grouped: dict[str, list[AccountResponseDTO]] = {t.value: [] for t in AccountType}
        for account in self.accounts.get_active_accounts():
            grouped[account.account_type].append(AccountResponseDTO.model_validate(account))
        return grouped
