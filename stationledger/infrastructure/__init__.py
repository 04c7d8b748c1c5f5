"""Infrastructure layer."""

from stationledger.infrastructure.database.models import (
    JournalEntryLine,
    JournalVoucher,
    LedgerAccount,
    TenantDirectory,
    VoucherSequence,
)
from stationledger.infrastructure.tenancy.cache import DomainState, TenantDomain, TenantDomainCache
from stationledger.infrastructure.tenancy.registry import (
    ConnectionParams,
    Credentials,
    DatabaseTenantRegistry,
    StaticTenantRegistry,
    TenantRegistry,
)
