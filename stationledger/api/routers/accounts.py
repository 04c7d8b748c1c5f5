"""
API Routers - Chart of accounts endpoints.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from stationledger.api.deps import get_db
from stationledger.application.accounts import ChartOfAccountsService
from stationledger.application.dto.ledger_dto import (
    AccountBalanceDTO,
    AccountCreateDTO,
    AccountProtectionDTO,
    AccountResponseDTO,
    AccountUpdateDTO,
    LedgerReportDTO,
    Page,
)
from stationledger.application.reports import LedgerReportingService
from stationledger.core.security import ActorContext, get_actor
from stationledger.domain.value_objects import AccountStatus, AccountType

router = APIRouter(prefix="/api/v1/ledger/accounts", tags=["Accounts"])


@router.post("", response_model=AccountResponseDTO, status_code=status.HTTP_201_CREATED)
def create_account(
    dto: AccountCreateDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Create a ledger account. Names are unique within the tenant."""
    account = ChartOfAccountsService(db, actor.actor_id).create_account(dto)
    return AccountResponseDTO.model_validate(account)


@router.get("", response_model=Page[AccountResponseDTO])
def list_accounts(
    account_type: AccountType | None = None,
    status: AccountStatus | None = None,
    is_system_account: bool | None = None,
    search: str | None = None,
    page: int = Query(1, description="1-based page number"),
    limit: int = Query(50, description="Page size"),
    db: Session = Depends(get_db),
):
    return ChartOfAccountsService(db).list_accounts(
        account_type=account_type,
        status=status,
        is_system_account=is_system_account,
        search=search,
        page=page,
        limit=limit,
    )


@router.get("/active", response_model=list[AccountResponseDTO])
def get_active_accounts(db: Session = Depends(get_db)):
    accounts = ChartOfAccountsService(db).get_active_accounts()
    return [AccountResponseDTO.model_validate(a) for a in accounts]


@router.get("/{account_id}", response_model=AccountResponseDTO)
def get_account(account_id: int, db: Session = Depends(get_db)):
    return AccountResponseDTO.model_validate(ChartOfAccountsService(db).get_account(account_id))


@router.patch("/{account_id}", response_model=AccountResponseDTO)
def update_account(
    account_id: int,
    dto: AccountUpdateDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Update an account.

    System accounts accept description and status changes only.
    """
    account = ChartOfAccountsService(db, actor.actor_id).update_account(account_id, dto)
    return AccountResponseDTO.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Delete an unused, non-system account. Referenced accounts must be deactivated."""
    ChartOfAccountsService(db, actor.actor_id).delete_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{account_id}/balance", response_model=AccountBalanceDTO)
def get_account_balance(
    account_id: int,
    as_of_date: date | None = None,
    db: Session = Depends(get_db),
):
    return ChartOfAccountsService(db).get_account_balance(account_id, as_of_date)


@router.get("/{account_id}/protection", response_model=AccountProtectionDTO)
def check_account_protection(account_id: int, db: Session = Depends(get_db)):
    return ChartOfAccountsService(db).check_account_protection(account_id)


@router.get("/{account_id}/ledger", response_model=LedgerReportDTO)
def get_ledger_report(
    account_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
):
    """Account statement with opening, running and closing balances."""
    return LedgerReportingService(db).get_ledger_report(account_id, start_date, end_date)
