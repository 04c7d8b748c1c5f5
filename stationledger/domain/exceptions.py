"""
Custom exceptions for the ledger domain.

These exceptions represent domain-level errors and are independent
of infrastructure concerns (HTTP, database driver, etc.). The API layer
maps them to status codes in one place.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# --- Tenant resolution ---

class UnknownTenantError(LedgerError):
    """Raised when the registry has no active entry for a tenant key."""

    def __init__(self, tenant_key: str):
        super().__init__(
            message=f"Unknown tenant: {tenant_key}",
            details={"tenant_key": tenant_key},
        )


class TenantInitializationError(LedgerError):
    """Raised when connecting to or preparing a tenant database fails. Retryable."""

    def __init__(self, tenant_key: str, reason: Optional[str] = None):
        message = f"Failed to initialize tenant '{tenant_key}'"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message, details={"tenant_key": tenant_key, "reason": reason}
        )


# --- Validation ---

class ValidationError(LedgerError):
    """Raised for malformed input."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message=message, details=details)


class InvalidLineError(ValidationError):
    """Raised when a voucher line breaks a line-level rule."""

    def __init__(self, reason: str, line_no: Optional[int] = None):
        message = f"Line {line_no}: {reason}" if line_no is not None else reason
        super().__init__(message=message, details={"line_no": line_no, "reason": reason})


class UnbalancedVoucherError(ValidationError):
    """Raised when total debits differ from total credits."""

    def __init__(self, total_debits: Decimal, total_credits: Decimal):
        difference = total_debits - total_credits
        super().__init__(
            message=(
                f"Voucher does not balance: debits {total_debits:.2f}, "
                f"credits {total_credits:.2f}, difference {abs(difference):.2f}"
            ),
            details={
                "total_debits": str(total_debits),
                "total_credits": str(total_credits),
                "difference": str(difference),
            },
        )


# --- Not found ---

class AccountNotFoundError(LedgerError):
    def __init__(self, account_id: int):
        super().__init__(
            message=f"Account not found: {account_id}", details={"account_id": account_id}
        )


class VoucherNotFoundError(LedgerError):
    def __init__(self, voucher_id: int):
        super().__init__(
            message=f"Voucher not found: {voucher_id}", details={"voucher_id": voucher_id}
        )


# --- Business rules ---

class ImmutableSystemAccountError(LedgerError):
    """Raised when a change would delete or redefine a system account."""

    def __init__(self, account_id: int, name: str, action: str):
        super().__init__(
            message=f"System account '{name}' cannot be {action}",
            details={"account_id": account_id, "action": action},
        )


class AccountInUseError(LedgerError):
    """Raised when deleting an account that voucher lines still reference."""

    def __init__(self, account_id: int, name: str, posted_lines: int, cancelled_lines: int):
        super().__init__(
            message=(
                f"Account '{name}' is referenced by {posted_lines} posted and "
                f"{cancelled_lines} cancelled voucher lines; deactivate it instead"
            ),
            details={
                "account_id": account_id,
                "posted_lines": posted_lines,
                "cancelled_lines": cancelled_lines,
            },
        )


class AlreadyCancelledError(LedgerError):
    def __init__(self, voucher_id: int, voucher_number: str):
        super().__init__(
            message=f"Voucher {voucher_number} is already cancelled",
            details={"voucher_id": voucher_id, "voucher_number": voucher_number},
        )


# --- Infrastructure ---

class LedgerInfrastructureError(LedgerError):
    """Raised when the store fails mid-operation; the transaction was rolled back."""

    def __init__(self, operation: str, reason: Optional[str] = None):
        message = f"Ledger operation '{operation}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"operation": operation})


class IntegrityCheckInterrupted(LedgerError):
    def __init__(self, vouchers_checked: int):
        super().__init__(
            message=f"Integrity check interrupted after {vouchers_checked} vouchers",
            details={"vouchers_checked": vouchers_checked},
        )
