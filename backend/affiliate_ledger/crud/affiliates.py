from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from affiliate_ledger.models.affiliates import Affiliate, AffiliateCommission


def create_affiliate(
    db: Session,
    *,
    user_id: str,
    promo_code: str,
    full_name: str | None = None,
    status: str = "active",
) -> Affiliate:
    affiliate = Affiliate(
        user_id=user_id,
        full_name=full_name,
        promo_code=promo_code,
        status=status,
        current_level=1,
        total_orders=0,
        delivered_orders=0,
        total_earnings=Decimal("0.00"),
        total_withdrawn=Decimal("0.00"),
        available_balance=Decimal("0.00"),
    )
    db.add(affiliate)
    db.commit()
    db.refresh(affiliate)
    return affiliate


def get_affiliate(db: Session, *, affiliate_id: int) -> Affiliate | None:
    return db.query(Affiliate).filter(Affiliate.id == affiliate_id).first()


def get_affiliate_by_user(db: Session, *, user_id: str) -> Affiliate | None:
    return db.query(Affiliate).filter(Affiliate.user_id == user_id).first()


def get_affiliate_by_promo_code(db: Session, *, promo_code: str) -> Affiliate | None:
    return db.query(Affiliate).filter(Affiliate.promo_code == promo_code).first()


def _affiliate_query(db: Session, *, status: str | None, search: str | None):
    query = db.query(Affiliate)
    if status:
        query = query.filter(Affiliate.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Affiliate.promo_code.ilike(pattern),
                Affiliate.full_name.ilike(pattern),
                Affiliate.user_id.ilike(pattern),
            )
        )
    return query


def list_affiliates(
    db: Session,
    *,
    status: str | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Affiliate]:
    return (
        _affiliate_query(db, status=status, search=search)
        .order_by(Affiliate.created_at.desc(), Affiliate.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_affiliates(db: Session, *, status: str | None = None, search: str | None = None) -> int:
    return int(_affiliate_query(db, status=status, search=search).count())


def commission_counts_by_status(db: Session, *, affiliate_ids: list[int]) -> dict[int, dict[str, int]]:
    if not affiliate_ids:
        return {}
    rows = (
        db.query(AffiliateCommission.affiliate_id, AffiliateCommission.status, func.count(AffiliateCommission.id))
        .filter(AffiliateCommission.affiliate_id.in_(affiliate_ids))
        .group_by(AffiliateCommission.affiliate_id, AffiliateCommission.status)
        .all()
    )
    counts: dict[int, dict[str, int]] = {affiliate_id: {} for affiliate_id in affiliate_ids}
    for affiliate_id, status, total in rows:
        counts.setdefault(affiliate_id, {})[status] = int(total or 0)
    return counts
