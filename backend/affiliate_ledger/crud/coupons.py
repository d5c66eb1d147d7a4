from __future__ import annotations

from sqlalchemy.orm import Session

from affiliate_ledger.models.coupons import Coupon


def create_coupon(
    db: Session,
    *,
    code: str,
    discount_type: str,
    discount_value: float,
    is_active: bool = True,
) -> Coupon:
    coupon = Coupon(
        code=code,
        discount_type=discount_type,
        discount_value=discount_value,
        is_active=is_active,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def get_coupon(db: Session, *, coupon_id: int) -> Coupon | None:
    return db.query(Coupon).filter(Coupon.id == coupon_id).first()


def get_coupon_by_code(db: Session, *, code: str) -> Coupon | None:
    return db.query(Coupon).filter(Coupon.code == code).first()


def list_coupons(db: Session) -> list[Coupon]:
    return db.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()
