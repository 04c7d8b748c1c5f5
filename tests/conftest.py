"""
Pytest configuration and fixtures.

Each test gets fresh SQLite tenant databases under tmp_path, resolved
through a real TenantDomainCache.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from stationledger.application.accounts import ChartOfAccountsService
from stationledger.application.dto.ledger_dto import (
    AccountCreateDTO,
    VoucherCreateDTO,
    VoucherLineCreateDTO,
)
from stationledger.application.integration import LedgerIntegrationService
from stationledger.application.reports import LedgerReportingService
from stationledger.application.vouchers import VoucherService
from stationledger.core.config import Settings
from stationledger.domain.value_objects import AccountType, VoucherType
from stationledger.infrastructure.tenancy.cache import TenantDomainCache
from stationledger.infrastructure.tenancy.registry import (
    ConnectionParams,
    StaticTenantRegistry,
)
from stationledger.main import create_app

ACTOR = "cashier-1"


def sqlite_params(path) -> ConnectionParams:
    return ConnectionParams(database_name=str(path), driver="sqlite")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        LOG_FORMAT="console",
        MASTER_DATABASE_URL=f"sqlite:///{tmp_path / 'master.db'}",
        TENANT_DB_DRIVER="sqlite",
        ALIGN_SCHEMA=True,
        SEED_SYSTEM_ACCOUNTS=True,
    )


@pytest.fixture
def registry(tmp_path) -> StaticTenantRegistry:
    return StaticTenantRegistry({
        "station-a": sqlite_params(tmp_path / "station_a.db"),
        "station-b": sqlite_params(tmp_path / "station_b.db"),
    })


@pytest.fixture
def cache(registry, settings):
    cache = TenantDomainCache(registry, settings)
    yield cache
    cache.close()


@pytest.fixture
def db(cache):
    with cache.resolve("station-a").session() as session:
        yield session


@pytest.fixture
def accounts(db) -> ChartOfAccountsService:
    return ChartOfAccountsService(db, ACTOR)


@pytest.fixture
def vouchers(db) -> VoucherService:
    return VoucherService(db, ACTOR)


@pytest.fixture
def reports(db) -> LedgerReportingService:
    return LedgerReportingService(db)


@pytest.fixture
def integration(db) -> LedgerIntegrationService:
    return LedgerIntegrationService(db, ACTOR)


@pytest.fixture
def cash_account(accounts):
    """A Bank-type account named Cash."""
    return accounts.create_account(AccountCreateDTO(name="Cash", account_type=AccountType.BANK))


@pytest.fixture
def fuel_purchase_account(accounts):
    return accounts.create_account(
        AccountCreateDTO(name="Fuel Purchase", account_type=AccountType.DIRECT_EXPENSE)
    )


@pytest.fixture
def vendor_account(accounts):
    return accounts.create_account(
        AccountCreateDTO(name="Indian Oil Depot", account_type=AccountType.VENDOR)
    )


@pytest.fixture
def customer_account(accounts):
    return accounts.create_account(
        AccountCreateDTO(name="Sharma Transport", account_type=AccountType.CUSTOMER)
    )


@pytest.fixture
def today() -> date:
    return date.today()


@pytest.fixture
def yesterday(today) -> date:
    return today - timedelta(days=1)


def _journal(debit_account_id: int, credit_account_id: int, amount: str,
             voucher_date: date | None = None, narration: str | None = None) -> VoucherCreateDTO:
    return VoucherCreateDTO(
        voucher_type=VoucherType.JOURNAL,
        voucher_date=voucher_date or date.today(),
        narration=narration,
        lines=[
            VoucherLineCreateDTO(account_id=debit_account_id, debit_amount=Decimal(amount)),
            VoucherLineCreateDTO(account_id=credit_account_id, credit_amount=Decimal(amount)),
        ],
    )


@pytest.fixture
def journal():
    """Factory for two-line Journal voucher drafts."""
    return _journal


@pytest.fixture
def client(cache, settings) -> TestClient:
    return TestClient(create_app(tenant_cache=cache, settings=settings))


@pytest.fixture
def headers() -> dict:
    return {"X-Tenant-Key": "station-a", "X-Actor-Id": ACTOR}
