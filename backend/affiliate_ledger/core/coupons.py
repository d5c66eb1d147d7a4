"""
Coupon links on affiliates, and the commissionable subtotal checkout needs.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from affiliate_ledger.core.errors import NotFoundError, ValidationError
from affiliate_ledger.core.ledger import require_affiliate, run_ledger_transaction
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.money import ZERO, round_money
from affiliate_ledger.crud.coupons import get_coupon
from affiliate_ledger.models.affiliates import Affiliate
from affiliate_ledger.models.coupons import Coupon


logger = get_structured_logger("affiliate_ledger.coupons")

_NO_COUPON = {"", "none", "null", "undefined", "0"}


def normalize_coupon_id(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    text = str(value).strip()
    if text.lower() in _NO_COUPON:
        return None
    try:
        return int(text)
    except ValueError as exc:
        raise ValidationError("Invalid coupon id", coupon_id=text) from exc


def assign_coupon(db: Session, *, affiliate_id: int, coupon_id) -> Affiliate:
    coupon_id = normalize_coupon_id(coupon_id)

    def _assign() -> Affiliate:
        affiliate = require_affiliate(db, affiliate_id)
        if coupon_id is not None and not get_coupon(db, coupon_id=coupon_id):
            raise NotFoundError("Coupon not found", coupon_id=coupon_id)
        affiliate.assigned_coupon_id = coupon_id
        return affiliate

    affiliate = run_ledger_transaction(db, _assign, name="assign_coupon")
    db.refresh(affiliate)
    logger.info("affiliate.coupon_assigned", extra={"affiliate_id": affiliate_id, "coupon_id": coupon_id})
    return affiliate


def coupon_discount(subtotal, coupon: Coupon | None) -> Decimal:
    subtotal = round_money(subtotal)
    if coupon is None or not coupon.is_active or subtotal <= ZERO:
        return ZERO
    value = round_money(coupon.discount_value)
    if coupon.discount_type == "percent":
        discount = round_money(subtotal * min(value, Decimal(100)) / Decimal(100))
    else:
        discount = value
    return min(max(discount, ZERO), subtotal)


def commissionable_subtotal(subtotal, coupon: Coupon | None = None) -> Decimal:
    """Order subtotal after coupon discount, before shipping and tax."""
    subtotal = round_money(subtotal)
    if subtotal <= ZERO:
        return ZERO
    return subtotal - coupon_discount(subtotal, coupon)
