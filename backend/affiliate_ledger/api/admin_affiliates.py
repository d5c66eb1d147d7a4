from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from affiliate_ledger.api.dependencies import require_admin
from affiliate_ledger.api.serializers import affiliate_read, commission_read, withdrawal_read
from affiliate_ledger.core.affiliates import list_affiliates_with_stats, set_affiliate_status
from affiliate_ledger.core.coupons import assign_coupon
from affiliate_ledger.core.db import get_db
from affiliate_ledger.core.errors import ValidationError
from affiliate_ledger.core.ledger import approve_commission, cancel_commission, reconcile_affiliate
from affiliate_ledger.core.money import money_to_float
from affiliate_ledger.core.program import get_effective_settings_row, load_program_settings, update_program_settings
from affiliate_ledger.core.withdrawals import (
    approve_withdrawal,
    complete_withdrawal,
    list_affiliate_withdrawals,
    reject_withdrawal,
)
from affiliate_ledger.crud.coupons import create_coupon, get_coupon_by_code, list_coupons
from affiliate_ledger.models.coupons import COUPON_DISCOUNT_TYPES
from affiliate_ledger.schemas.affiliates import (
    AffiliateCouponAssign,
    AffiliateListItem,
    AffiliateListResponse,
    AffiliateRead,
    AffiliateStatusUpdate,
    CommissionCancel,
    CommissionRead,
    LedgerReconcileRead,
    PageMeta,
)
from affiliate_ledger.schemas.coupons import CouponCreate, CouponRead
from affiliate_ledger.schemas.program_settings import (
    CommissionLevelPayload,
    ProgramSettingsRead,
    ProgramSettingsUpdate,
)
from affiliate_ledger.schemas.withdrawals import WithdrawalProcess, WithdrawalRead


router = APIRouter(prefix="/admin/affiliates", tags=["admin"])


def _settings_read(db: Session) -> ProgramSettingsRead:
    program = load_program_settings(db)
    row = get_effective_settings_row(db)
    return ProgramSettingsRead(
        enabled=program.enabled,
        min_withdrawal_amount=money_to_float(program.min_withdrawal_amount),
        cookie_expiry_days=program.cookie_expiry_days,
        commission_levels={
            int(level): CommissionLevelPayload(**config)
            for level, config in program.to_storage().items()
        },
        updated_at=row.updated_at,
    )


def _coupon_read(coupon) -> CouponRead:
    return CouponRead(
        id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=money_to_float(coupon.discount_value),
        is_active=bool(coupon.is_active),
        created_at=coupon.created_at,
    )


@router.get("/settings", response_model=ProgramSettingsRead)
def get_program_settings(db: Session = Depends(get_db), _admin=Depends(require_admin())):
    return _settings_read(db)


@router.patch("/settings", response_model=ProgramSettingsRead)
def patch_program_settings(
    payload: ProgramSettingsUpdate,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    updates = payload.model_dump(exclude_unset=True)
    update_program_settings(db, updates=updates)
    return _settings_read(db)


@router.get("", response_model=AffiliateListResponse)
def list_all_affiliates(
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    result = list_affiliates_with_stats(db, status=status_filter, search=search, page=page, limit=limit)
    return AffiliateListResponse(
        meta=PageMeta(**result["meta"]),
        data=[
            AffiliateListItem(
                **affiliate_read(item["affiliate"]).model_dump(),
                total_commissions=item["total_commissions"],
                pending_commissions=item["pending_commissions"],
                approved_commissions=item["approved_commissions"],
            )
            for item in result["data"]
        ],
    )


@router.patch("/{affiliate_id}/status", response_model=AffiliateRead)
def update_affiliate_status(
    affiliate_id: int,
    payload: AffiliateStatusUpdate,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    affiliate = set_affiliate_status(db, affiliate_id=affiliate_id, status=payload.status)
    return affiliate_read(affiliate)


@router.put("/{affiliate_id}/coupon", response_model=AffiliateRead)
def update_affiliate_coupon(
    affiliate_id: int,
    payload: AffiliateCouponAssign,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    affiliate = assign_coupon(db, affiliate_id=affiliate_id, coupon_id=payload.coupon_id)
    return affiliate_read(affiliate)


@router.get("/{affiliate_id}/reconcile", response_model=LedgerReconcileRead)
def reconcile(affiliate_id: int, db: Session = Depends(get_db), _admin=Depends(require_admin())):
    report = reconcile_affiliate(db, affiliate_id=affiliate_id)
    return LedgerReconcileRead(
        affiliate_id=report["affiliate_id"],
        stored={key: money_to_float(value) for key, value in report["stored"].items()},
        expected={key: money_to_float(value) for key, value in report["expected"].items()},
        drift={key: money_to_float(value) for key, value in report["drift"].items()},
        consistent=report["consistent"],
    )


@router.get("/withdrawals", response_model=list[WithdrawalRead])
def list_all_withdrawals(
    status_filter: str | None = Query(None, alias="status"),
    affiliate_id: int | None = Query(None),
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    rows = list_affiliate_withdrawals(db, affiliate_id=affiliate_id, status=status_filter)
    return [withdrawal_read(row) for row in rows]


@router.post("/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalRead)
def approve(
    withdrawal_id: int,
    payload: WithdrawalProcess,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    withdrawal = approve_withdrawal(db, withdrawal_id=withdrawal_id, processed_by=payload.processed_by)
    return withdrawal_read(withdrawal)


@router.post("/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalRead)
def reject(
    withdrawal_id: int,
    payload: WithdrawalProcess,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    withdrawal = reject_withdrawal(
        db,
        withdrawal_id=withdrawal_id,
        processed_by=payload.processed_by,
        notes=payload.notes,
    )
    return withdrawal_read(withdrawal)


@router.post("/withdrawals/{withdrawal_id}/complete", response_model=WithdrawalRead)
def complete(
    withdrawal_id: int,
    payload: WithdrawalProcess,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    withdrawal = complete_withdrawal(
        db,
        withdrawal_id=withdrawal_id,
        processed_by=payload.processed_by,
        notes=payload.notes,
    )
    return withdrawal_read(withdrawal)


@router.post("/commissions/{commission_id}/approve", response_model=CommissionRead)
def approve_affiliate_commission(
    commission_id: int,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    return commission_read(approve_commission(db, commission_id=commission_id))


@router.post("/commissions/{commission_id}/cancel", response_model=CommissionRead)
def cancel_affiliate_commission(
    commission_id: int,
    payload: CommissionCancel,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    return commission_read(cancel_commission(db, commission_id=commission_id, reason=payload.reason))


@router.get("/coupons", response_model=list[CouponRead])
def list_all_coupons(db: Session = Depends(get_db), _admin=Depends(require_admin())):
    return [_coupon_read(coupon) for coupon in list_coupons(db)]


@router.post("/coupons", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
def create_new_coupon(
    payload: CouponCreate,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    code = payload.code.strip().upper()
    if not code:
        raise ValidationError("Coupon code is required")
    if payload.discount_type not in COUPON_DISCOUNT_TYPES:
        raise ValidationError("Invalid discount type", discount_type=payload.discount_type)
    if payload.discount_value < 0:
        raise ValidationError("Discount value cannot be negative")
    if get_coupon_by_code(db, code=code):
        raise ValidationError("Coupon code already exists", code=code)
    try:
        coupon = create_coupon(
            db,
            code=code,
            discount_type=payload.discount_type,
            discount_value=payload.discount_value,
            is_active=payload.is_active,
        )
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Coupon code already exists", code=code) from exc
    return _coupon_read(coupon)
