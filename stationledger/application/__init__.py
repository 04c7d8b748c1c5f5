"""Application layer - Use cases and DTOs."""

from stationledger.application.accounts import ChartOfAccountsService
from stationledger.application.integration import LedgerIntegrationService, post_voucher_from_event
from stationledger.application.reports import LedgerReportingService
from stationledger.application.vouchers import VoucherService
