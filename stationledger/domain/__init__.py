"""Domain layer - Pure Python ledger rules."""

from stationledger.domain.entities import (
    AccountRef,
    IntegrityViolation,
    PostedLine,
    ValidatedVoucher,
    VoucherLineDraft,
)
from stationledger.domain.services import check_posted_voucher, pair_lines, validate_voucher
from stationledger.domain.value_objects import (
    AccountStatus,
    AccountType,
    BalanceSide,
    VoucherStatus,
    VoucherType,
)
