from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from affiliate_ledger.models.affiliates import AffiliateWithdrawal


def get_withdrawal(db: Session, *, withdrawal_id: int) -> AffiliateWithdrawal | None:
    return db.query(AffiliateWithdrawal).filter(AffiliateWithdrawal.id == withdrawal_id).first()


def list_withdrawals(
    db: Session,
    *,
    affiliate_id: int | None = None,
    status: str | None = None,
) -> list[AffiliateWithdrawal]:
    query = db.query(AffiliateWithdrawal)
    if affiliate_id is not None:
        query = query.filter(AffiliateWithdrawal.affiliate_id == affiliate_id)
    if status:
        query = query.filter(AffiliateWithdrawal.status == status)
    return query.order_by(AffiliateWithdrawal.requested_at.desc(), AffiliateWithdrawal.id.desc()).all()


def sum_withdrawals(db: Session, *, affiliate_id: int, statuses: list[str]) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(AffiliateWithdrawal.amount), 0))
        .filter(
            AffiliateWithdrawal.affiliate_id == affiliate_id,
            AffiliateWithdrawal.status.in_(statuses),
        )
        .scalar()
    )
    return Decimal(str(total or 0))
