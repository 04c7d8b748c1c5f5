"""
API Routers - Ledger report endpoints.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stationledger.api.deps import get_db
from stationledger.application.dto.ledger_dto import (
    BalanceSheetDTO,
    CashFlowReportDTO,
    IntegrityReportDTO,
    ProfitLossDTO,
    TrialBalanceDTO,
)
from stationledger.application.reports import LedgerReportingService

router = APIRouter(prefix="/api/v1/ledger/reports", tags=["Reports"])


@router.get("/trial-balance", response_model=TrialBalanceDTO)
def get_trial_balance(
    as_of_date: date | None = Query(None, description="Defaults to today"),
    db: Session = Depends(get_db),
):
    """
    Trial balance.

    Posted vouchers only; cancelled vouchers contribute nothing.
    """
    return LedgerReportingService(db).get_trial_balance(as_of_date)


@router.get("/cash-flow", response_model=CashFlowReportDTO)
def get_cash_flow_report(
    start_date: date | None = Query(None, description="Defaults to the first of end_date's month"),
    end_date: date | None = Query(None, description="Defaults to today"),
    db: Session = Depends(get_db),
):
    return LedgerReportingService(db).get_cash_flow_report(start_date, end_date)


@router.get("/profit-loss", response_model=ProfitLossDTO)
def get_profit_loss(
    start_date: date | None = Query(None, description="Defaults to the first of end_date's month"),
    end_date: date | None = Query(None, description="Defaults to today"),
    db: Session = Depends(get_db),
):
    """Income from Customer accounts against Direct and Indirect Expense."""
    return LedgerReportingService(db).get_profit_loss(start_date, end_date)


@router.get("/balance-sheet", response_model=BalanceSheetDTO)
def get_balance_sheet(
    as_of_date: date | None = Query(None, description="Defaults to today"),
    db: Session = Depends(get_db),
):
    """
    Balance sheet.

    Equity is retained earnings derived from posted income and expense.
    """
    return LedgerReportingService(db).get_balance_sheet(as_of_date)


@router.get("/integrity", response_model=IntegrityReportDTO)
def get_integrity_check(db: Session = Depends(get_db)):
    """Recompute every voucher and account balance and report inconsistencies."""
    return LedgerReportingService(db).get_integrity_check()
