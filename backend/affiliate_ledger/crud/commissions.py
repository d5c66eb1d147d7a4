from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from affiliate_ledger.models.affiliates import AffiliateCommission


def get_commission(db: Session, *, commission_id: int) -> AffiliateCommission | None:
    return db.query(AffiliateCommission).filter(AffiliateCommission.id == commission_id).first()


def get_commission_for_order(db: Session, *, affiliate_id: int, order_id: str) -> AffiliateCommission | None:
    return (
        db.query(AffiliateCommission)
        .filter(
            AffiliateCommission.affiliate_id == affiliate_id,
            AffiliateCommission.order_id == order_id,
        )
        .first()
    )


def list_commissions_for_order(db: Session, *, order_id: str) -> list[AffiliateCommission]:
    return (
        db.query(AffiliateCommission)
        .filter(AffiliateCommission.order_id == order_id)
        .order_by(AffiliateCommission.id.asc())
        .all()
    )


def _commission_query(db: Session, *, affiliate_id: int, status: str | None):
    query = db.query(AffiliateCommission).filter(AffiliateCommission.affiliate_id == affiliate_id)
    if status:
        query = query.filter(AffiliateCommission.status == status)
    return query


def list_commissions(
    db: Session,
    *,
    affiliate_id: int,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AffiliateCommission]:
    return (
        _commission_query(db, affiliate_id=affiliate_id, status=status)
        .order_by(AffiliateCommission.created_at.desc(), AffiliateCommission.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_commissions(db: Session, *, affiliate_id: int, status: str | None = None) -> int:
    return int(_commission_query(db, affiliate_id=affiliate_id, status=status).count())


def sum_commissions(db: Session, *, affiliate_id: int, status: str) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(AffiliateCommission.commission_amount), 0))
        .filter(
            AffiliateCommission.affiliate_id == affiliate_id,
            AffiliateCommission.status == status,
        )
        .scalar()
    )
    return Decimal(str(total or 0))
