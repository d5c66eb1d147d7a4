"""
Order lifecycle events from the order collaborator.

Delivery is at-least-once, so every handler is safe to replay: commission
creation is idempotent per order, and approve/cancel are no-ops once the
commission has reached the target state.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from affiliate_ledger.core.attribution import AttributionToken, decode_token
from affiliate_ledger.core.errors import InactiveError, NotFoundError, ValidationError
from affiliate_ledger.core.ledger import approve_commission, cancel_commission, record_commission
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.time import utcnow
from affiliate_ledger.crud.commissions import list_commissions_for_order
from affiliate_ledger.models.affiliates import AffiliateCommission


logger = get_structured_logger("affiliate_ledger.order_events")


def handle_order_created(
    db: Session,
    *,
    order_id: str,
    commissionable_subtotal,
    attribution: AttributionToken | None,
    now: datetime | None = None,
) -> AffiliateCommission | None:
    if attribution is None:
        return None
    if not attribution.is_valid(now or utcnow()):
        logger.info(
            "order.attribution_expired",
            extra={"order_id": order_id, "affiliate_id": attribution.affiliate_id},
        )
        return None
    try:
        return record_commission(
            db,
            affiliate_id=attribution.affiliate_id,
            order_id=order_id,
            commissionable_subtotal=commissionable_subtotal,
        )
    except (InactiveError, NotFoundError) as exc:
        # Checkout already went through; a referral that no longer applies
        # just means no commission.
        logger.info(
            "order.attribution_ignored",
            extra={"order_id": order_id, "affiliate_id": attribution.affiliate_id, "reason": exc.code},
        )
        return None


def handle_order_delivered(db: Session, *, order_id: str) -> list[AffiliateCommission]:
    """Approve every commission recorded for the order.

    Uniqueness is per ``(affiliate_id, order_id)``, so one order can carry
    more than one affiliate's commission; each is its own ledger transaction.
    """
    return [
        approve_commission(db, commission_id=commission.id)
        for commission in list_commissions_for_order(db, order_id=order_id)
    ]


def handle_order_cancelled(
    db: Session, *, order_id: str, reason: str = "cancelled"
) -> list[AffiliateCommission]:
    return [
        cancel_commission(db, commission_id=commission.id, reason=reason)
        for commission in list_commissions_for_order(db, order_id=order_id)
    ]


def handle_order_refunded(db: Session, *, order_id: str) -> list[AffiliateCommission]:
    return handle_order_cancelled(db, order_id=order_id, reason="refunded")



class OrderEventProcessor:
    """Dispatches order events to the handlers above.

    ``OrderCreated`` carries the signed attribution string captured at
    checkout; anything that fails to decode counts as no attribution.
    """

    def __init__(self, db: Session):
        self.db = db

    def apply(self, event, *, now: datetime | None = None) -> list[AffiliateCommission]:
        """Apply one event; returns the commissions it touched."""
        if event.type == "order.created":
            commission = handle_order_created(
                self.db,
                order_id=event.order_id,
                commissionable_subtotal=event.commissionable_subtotal,
                attribution=decode_token(event.affiliate_attribution, now=now, allow_expired=True),
                now=now,
            )
            return [commission] if commission is not None else []
        if event.type == "order.delivered":
            return handle_order_delivered(self.db, order_id=event.order_id)
        if event.type == "order.cancelled":
            return handle_order_cancelled(self.db, order_id=event.order_id)
        if event.type == "order.refunded":
            return handle_order_refunded(self.db, order_id=event.order_id)
        raise ValidationError("Unknown order event type", type=event.type)
