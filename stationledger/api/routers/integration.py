"""
API Routers - Posting hooks for the purchases, sales and credit modules.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stationledger.api.deps import get_db
from stationledger.application.dto.ledger_dto import (
    AccountResponseDTO,
    CustomerPaymentEventDTO,
    PurchaseEventDTO,
    SalesBatchDTO,
    VoucherResponseDTO,
)
from stationledger.application.integration import LedgerIntegrationService
from stationledger.application.vouchers import voucher_to_dto
from stationledger.core.security import ActorContext, get_actor

router = APIRouter(prefix="/api/v1/ledger/integration", tags=["Integration"])


@router.post("/purchase", response_model=VoucherResponseDTO, status_code=status.HTTP_201_CREATED)
def post_purchase(
    dto: PurchaseEventDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return voucher_to_dto(LedgerIntegrationService(db, actor.actor_id).post_purchase(dto))


@router.post("/sales", response_model=list[VoucherResponseDTO], status_code=status.HTTP_201_CREATED)
def post_sales(
    dto: SalesBatchDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """One voucher per (bill mode, party) group."""
    vouchers = LedgerIntegrationService(db, actor.actor_id).post_sales(dto)
    return [voucher_to_dto(v) for v in vouchers]


@router.post(
    "/customer-payment",
    response_model=VoucherResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
def post_customer_payment(
    dto: CustomerPaymentEventDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    service = LedgerIntegrationService(db, actor.actor_id)
    return voucher_to_dto(service.post_customer_payment(dto))


@router.get("/accounts", response_model=dict[str, list[AccountResponseDTO]])
def get_available_accounts(db: Session = Depends(get_db)):
    """Active accounts grouped by type."""
    return LedgerIntegrationService(db).get_available_accounts()
