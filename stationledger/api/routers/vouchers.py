"""
API Routers - Journal voucher endpoints.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stationledger.api.deps import get_db
from stationledger.application.dto.ledger_dto import (
    JournalVoucherDTO,
    Page,
    QuickVoucherDTO,
    VoucherCreateDTO,
    VoucherResponseDTO,
    VoucherValidationDTO,
)
from stationledger.application.vouchers import VoucherService, voucher_to_dto
from stationledger.core.security import ActorContext, get_actor
from stationledger.domain.value_objects import VoucherStatus, VoucherType

router = APIRouter(prefix="/api/v1/ledger/vouchers", tags=["Vouchers"])


@router.post("", response_model=VoucherResponseDTO, status_code=status.HTTP_201_CREATED)
def create_voucher(
    dto: VoucherCreateDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Post a voucher.

    - At least two lines, each either a debit or a credit
    - Total debits must equal total credits exactly
    - Voucher number is assigned from the tenant's sequence
    """
    voucher = VoucherService(db, actor.actor_id).create_voucher(dto)
    return voucher_to_dto(voucher)


@router.post("/payment", response_model=VoucherResponseDTO, status_code=status.HTTP_201_CREATED)
def create_payment_voucher(
    dto: QuickVoucherDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Dr the expense/vendor account, Cr the bank account."""
    return voucher_to_dto(VoucherService(db, actor.actor_id).create_payment_voucher(dto))


@router.post("/receipt", response_model=VoucherResponseDTO, status_code=status.HTTP_201_CREATED)
def create_receipt_voucher(
    dto: QuickVoucherDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Dr the bank account, Cr the customer account."""
    return voucher_to_dto(VoucherService(db, actor.actor_id).create_receipt_voucher(dto))


@router.post("/journal", response_model=VoucherResponseDTO, status_code=status.HTTP_201_CREATED)
def create_journal_voucher(
    dto: JournalVoucherDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return voucher_to_dto(VoucherService(db, actor.actor_id).create_journal_voucher(dto))


@router.post("/validate", response_model=VoucherValidationDTO)
def validate_voucher(
    dto: VoucherCreateDTO,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Check a draft voucher without posting it or consuming a voucher number."""
    return VoucherService(db, actor.actor_id).validate_voucher(dto)


@router.get("", response_model=Page[VoucherResponseDTO])
def list_vouchers(
    voucher_type: VoucherType | None = None,
    status: VoucherStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
    page: int = Query(1, description="1-based page number"),
    limit: int = Query(50, description="Page size"),
    db: Session = Depends(get_db),
):
    """Vouchers, newest first."""
    return VoucherService(db).get_vouchers(
        voucher_type=voucher_type,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )


@router.get("/{voucher_id}", response_model=VoucherResponseDTO)
def get_voucher(voucher_id: int, db: Session = Depends(get_db)):
    return voucher_to_dto(VoucherService(db).get_voucher(voucher_id))


@router.patch("/{voucher_id}/cancel", response_model=VoucherResponseDTO)
def cancel_voucher(
    voucher_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Cancel a posted voucher. Its amounts drop out of every report."""
    return voucher_to_dto(VoucherService(db, actor.actor_id).cancel_voucher(voucher_id))
