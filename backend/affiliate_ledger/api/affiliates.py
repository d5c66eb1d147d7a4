from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from affiliate_ledger.api.serializers import affiliate_read, commission_read, withdrawal_read
from affiliate_ledger.core.affiliates import build_affiliate_progress, enroll_affiliate
from affiliate_ledger.core.db import get_db
from affiliate_ledger.core.ledger import build_ledger_summary, list_affiliate_commissions, require_affiliate
from affiliate_ledger.core.money import money_to_float
from affiliate_ledger.core.withdrawals import create_withdrawal, list_affiliate_withdrawals
from affiliate_ledger.schemas.affiliates import (
    AffiliateEnroll,
    AffiliateProgressRead,
    AffiliateRead,
    CommissionListResponse,
    LedgerSummary,
    PageMeta,
)
from affiliate_ledger.schemas.withdrawals import WithdrawalCreate, WithdrawalRead


# Affiliate identity is resolved upstream; these routes trust the path id.
router = APIRouter(prefix="/affiliates", tags=["affiliates"])


@router.post("", response_model=AffiliateRead, status_code=status.HTTP_201_CREATED)
def enroll(payload: AffiliateEnroll, db: Session = Depends(get_db)):
    affiliate = enroll_affiliate(db, user_id=payload.user_id, full_name=payload.full_name)
    return affiliate_read(affiliate)


@router.get("/{affiliate_id}", response_model=AffiliateRead)
def get_affiliate_account(affiliate_id: int, db: Session = Depends(get_db)):
    return affiliate_read(require_affiliate(db, affiliate_id))


@router.get("/{affiliate_id}/progress", response_model=AffiliateProgressRead)
def get_affiliate_progress(affiliate_id: int, db: Session = Depends(get_db)):
    return AffiliateProgressRead(**build_affiliate_progress(db, affiliate_id=affiliate_id))


@router.get("/{affiliate_id}/summary", response_model=LedgerSummary)
def get_affiliate_summary(affiliate_id: int, db: Session = Depends(get_db)):
    summary = build_ledger_summary(db, affiliate_id=affiliate_id)
    return LedgerSummary(
        **{key: money_to_float(value) if isinstance(value, Decimal) else value for key, value in summary.items()}
    )


@router.get("/{affiliate_id}/commissions", response_model=CommissionListResponse)
def list_commissions_for_affiliate(
    affiliate_id: int,
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    result = list_affiliate_commissions(
        db,
        affiliate_id=affiliate_id,
        status=status_filter,
        page=page,
        limit=limit,
    )
    return CommissionListResponse(
        meta=PageMeta(**result["meta"]),
        data=[commission_read(row) for row in result["data"]],
    )


@router.get("/{affiliate_id}/withdrawals", response_model=list[WithdrawalRead])
def list_withdrawals_for_affiliate(
    affiliate_id: int,
    status_filter: str | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    rows = list_affiliate_withdrawals(db, affiliate_id=affiliate_id, status=status_filter)
    return [withdrawal_read(row) for row in rows]


@router.post(
    "/{affiliate_id}/withdrawals",
    response_model=WithdrawalRead,
    status_code=status.HTTP_201_CREATED,
)
def request_withdrawal(affiliate_id: int, payload: WithdrawalCreate, db: Session = Depends(get_db)):
    details = payload.payment_details.model_dump(exclude_none=True) if payload.payment_details else None
    withdrawal = create_withdrawal(
        db,
        affiliate_id=affiliate_id,
        amount=payload.amount,
        payment_method=payload.payment_method,
        payment_details=details,
    )
    return withdrawal_read(withdrawal)
