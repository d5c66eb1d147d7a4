"""
Affiliate commission ledger.

Owns the money counters on an affiliate row (``total_earnings``,
``total_withdrawn``, ``available_balance``, ``delivered_orders``,
``current_level``). Every mutation runs through ``run_ledger_transaction``:
the affiliate, commission and withdrawal rows carry a version column, so a
concurrent writer that committed first turns our flush into a
``StaleDataError``. We then roll back, re-read, and re-run the whole
operation, up to ``LEDGER_MAX_RETRIES`` times.

Invariant kept for every affiliate::

    available_balance = sum(approved commissions)
                        - total_withdrawn
                        - sum(pending + approved withdrawals)

and ``available_balance`` never goes below zero.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from affiliate_ledger.core.commission import commission_rate, compute_commission
from affiliate_ledger.core.config import settings
from affiliate_ledger.core.errors import (
    ConcurrencyConflict,
    InactiveError,
    InsufficientReversalError,
    NotFoundError,
    ValidationError,
)
from affiliate_ledger.core.levels import calculate_level
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.metrics import record_commission_event, record_ledger_retry
from affiliate_ledger.core.money import ZERO, round_money, to_decimal
from affiliate_ledger.core.program import load_program_settings
from affiliate_ledger.core.time import utcnow
from affiliate_ledger.crud.affiliates import get_affiliate
from affiliate_ledger.crud.commissions import (
    count_commissions,
    get_commission,
    get_commission_for_order,
    list_commissions,
    sum_commissions,
)
from affiliate_ledger.crud.withdrawals import sum_withdrawals
from affiliate_ledger.models.affiliates import Affiliate, AffiliateCommission


logger = get_structured_logger("affiliate_ledger.ledger")

T = TypeVar("T")

RESERVED_WITHDRAWAL_STATUSES = ["pending", "approved"]


def run_ledger_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    name: str,
    max_attempts: int | None = None,
) -> T:
    """Run ``operation`` and commit, retrying on optimistic-lock conflicts.

    ``operation`` must read everything it depends on from ``db`` each time
    it is called; after a rollback the session holds no stale state.
    Any other exception rolls back and propagates unchanged.
    """
    attempts = max_attempts or settings.LEDGER_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            record_ledger_retry(name)
            logger.warning("ledger.retry", extra={"operation": name, "attempt": attempt})
        except Exception:
            db.rollback()
            raise
    raise ConcurrencyConflict(
        f"Concurrent updates kept conflicting for {name}; try again",
        operation=name,
        attempts=attempts,
    )


def require_affiliate(db: Session, affiliate_id: int) -> Affiliate:
    affiliate = get_affiliate(db, affiliate_id=affiliate_id)
    if not affiliate:
        raise NotFoundError("Affiliate not found", affiliate_id=affiliate_id)
    return affiliate


def _require_commission(db: Session, commission_id: int) -> AffiliateCommission:
    commission = get_commission(db, commission_id=commission_id)
    if not commission:
        raise NotFoundError("Commission not found", commission_id=commission_id)
    return commission


def record_commission(
    db: Session,
    *,
    affiliate_id: int,
    order_id: str,
    commissionable_subtotal,
) -> AffiliateCommission:
    """Create the pending commission for an order, once.

    Replays for the same ``(affiliate_id, order_id)`` return the stored row
    untouched, even when the duplicate arrives concurrently.
    """
    order_id = (order_id or "").strip()
    if not order_id:
        raise ValidationError("order_id is required")
    try:
        subtotal = to_decimal(commissionable_subtotal)
    except TypeError as exc:
        raise ValidationError("Commissionable subtotal must be a number", order_id=order_id) from exc
    if subtotal < 0:
        raise ValidationError("Commissionable subtotal cannot be negative", order_id=order_id)

    def _record() -> tuple[AffiliateCommission, bool]:
        existing = get_commission_for_order(db, affiliate_id=affiliate_id, order_id=order_id)
        if existing:
            return existing, False

        program = load_program_settings(db)
        if not program.enabled:
            raise InactiveError("Affiliate program is disabled")
        affiliate = require_affiliate(db, affiliate_id)
        if affiliate.status != "active":
            raise InactiveError("Affiliate is not active", affiliate_id=affiliate_id, status=affiliate.status)

        level = int(affiliate.current_level or 1)
        commission = AffiliateCommission(
            affiliate_id=affiliate.id,
            order_id=order_id,
            level=level,
            order_commissionable_total=round_money(subtotal),
            commission_percentage=commission_rate(level, program),
            commission_amount=compute_commission(subtotal, level, program),
            status="pending",
        )
        db.add(commission)
        affiliate.total_orders = int(affiliate.total_orders or 0) + 1
        db.flush()
        return commission, True

    try:
        commission, created = run_ledger_transaction(db, _record, name="record_commission")
    except IntegrityError:
        # Lost the insert race on the unique (affiliate_id, order_id) key.
        existing = get_commission_for_order(db, affiliate_id=affiliate_id, order_id=order_id)
        if not existing:
            raise
        commission, created = existing, False

    db.refresh(commission)
    if created:
        record_commission_event("recorded")
        logger.info(
            "commission.recorded",
            extra={
                "affiliate_id": affiliate_id,
                "commission_id": commission.id,
                "order_id": order_id,
                "level": commission.level,
                "commission_amount": commission.commission_amount,
            },
        )
    else:
        record_commission_event("duplicate")
        logger.info(
            "commission.duplicate",
            extra={"affiliate_id": affiliate_id, "commission_id": commission.id, "order_id": order_id},
        )
    return commission


def approve_commission(db: Session, *, commission_id: int) -> AffiliateCommission:
    """pending -> approved; credits the affiliate and re-evaluates its level.

    Approved and cancelled commissions come back unchanged.
    """

    def _approve() -> tuple[AffiliateCommission, bool]:
        commission = _require_commission(db, commission_id)
        if commission.status != "pending":
            return commission, False

        program = load_program_settings(db)
        affiliate = require_affiliate(db, commission.affiliate_id)
        amount = round_money(commission.commission_amount)

        commission.status = "approved"
        commission.approved_at = utcnow()
        affiliate.total_earnings = round_money(affiliate.total_earnings) + amount
        affiliate.available_balance = round_money(affiliate.available_balance) + amount
        affiliate.delivered_orders = int(affiliate.delivered_orders or 0) + 1
        affiliate.current_level = calculate_level(affiliate.delivered_orders, program)
        return commission, True

    commission, changed = run_ledger_transaction(db, _approve, name="approve_commission")
    db.refresh(commission)
    if changed:
        record_commission_event("approved")
        logger.info(
            "commission.approved",
            extra={
                "affiliate_id": commission.affiliate_id,
                "commission_id": commission.id,
                "order_id": commission.order_id,
                "commission_amount": commission.commission_amount,
            },
        )
    return commission


def cancel_commission(db: Session, *, commission_id: int, reason: str = "cancelled") -> AffiliateCommission:
    """pending|approved -> cancelled.

    Cancelling an approved commission reverses its credit. If the affiliate
    has already reserved or withdrawn that money the reversal is refused with
    ``InsufficientReversalError`` and nothing changes.
    """

    def _cancel() -> tuple[AffiliateCommission, bool]:
        commission = _require_commission(db, commission_id)
        if commission.status == "cancelled":
            return commission, False

        if commission.status == "approved":
            affiliate = require_affiliate(db, commission.affiliate_id)
            amount = round_money(commission.commission_amount)
            balance = round_money(affiliate.available_balance)
            if balance - amount < ZERO:
                context = {
                    "affiliate_id": affiliate.id,
                    "commission_id": commission.id,
                    "order_id": commission.order_id,
                    "commission_amount": str(amount),
                    "available_balance": str(balance),
                }
                logger.error("commission.reversal_rejected", extra=context)
                record_commission_event("reversal_rejected")
                raise InsufficientReversalError(
                    "Cannot reverse commission: the affiliate's available balance is too low",
                    **context,
                )
            program = load_program_settings(db)
            affiliate.total_earnings = round_money(affiliate.total_earnings) - amount
            affiliate.available_balance = balance - amount
            affiliate.delivered_orders = max(int(affiliate.delivered_orders or 0) - 1, 0)
            affiliate.current_level = calculate_level(affiliate.delivered_orders, program)

        commission.status = "cancelled"
        commission.cancelled_at = utcnow()
        commission.cancel_reason = reason
        return commission, True

    commission, changed = run_ledger_transaction(db, _cancel, name="cancel_commission")
    db.refresh(commission)
    if changed:
        record_commission_event("cancelled")
        logger.info(
            "commission.cancelled",
            extra={
                "affiliate_id": commission.affiliate_id,
                "commission_id": commission.id,
                "order_id": commission.order_id,
                "reason": reason,
            },
        )
    return commission


def list_affiliate_commissions(
    db: Session,
    *,
    affiliate_id: int,
    status: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    require_affiliate(db, affiliate_id)
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 50), 1), 200)
    total = count_commissions(db, affiliate_id=affiliate_id, status=status)
    rows = list_commissions(
        db,
        affiliate_id=affiliate_id,
        status=status,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_page": (total + limit - 1) // limit,
        },
        "data": rows,
    }


def compute_expected_balance(db: Session, *, affiliate_id: int) -> dict[str, Decimal]:
    """Recompute the ledger counters from commission and withdrawal rows."""
    require_affiliate(db, affiliate_id)
    approved = sum_commissions(db, affiliate_id=affiliate_id, status="approved")
    completed = sum_withdrawals(db, affiliate_id=affiliate_id, statuses=["completed"])
    reserved = sum_withdrawals(db, affiliate_id=affiliate_id, statuses=RESERVED_WITHDRAWAL_STATUSES)
    return {
        "total_earnings": round_money(approved),
        "total_withdrawn": round_money(completed),
        "reserved": round_money(reserved),
        "available_balance": round_money(approved - completed - reserved),
    }


def reconcile_affiliate(db: Session, *, affiliate_id: int) -> dict:
    """Compare stored counters with recomputed ones. Reports drift; never repairs."""
    affiliate = require_affiliate(db, affiliate_id)
    expected = compute_expected_balance(db, affiliate_id=affiliate_id)
    stored = {
        "total_earnings": round_money(affiliate.total_earnings),
        "total_withdrawn": round_money(affiliate.total_withdrawn),
        "available_balance": round_money(affiliate.available_balance),
    }
    drift = {
        key: stored[key] - expected[key]
        for key in stored
        if stored[key] != expected[key]
    }
    if drift:
        logger.warning(
            "ledger.drift_detected",
            extra={
                "affiliate_id": affiliate_id,
                "drift": {key: str(value) for key, value in drift.items()},
            },
        )
    return {
        "affiliate_id": affiliate_id,
        "stored": stored,
        "expected": expected,
        "drift": drift,
        "consistent": not drift and stored["available_balance"] >= ZERO,
    }


def build_ledger_summary(db: Session, *, affiliate_id: int) -> dict:
    affiliate = require_affiliate(db, affiliate_id)
    return {
        "affiliate_id": affiliate.id,
        "total_orders": int(affiliate.total_orders or 0),
        "delivered_orders": int(affiliate.delivered_orders or 0),
        "total_earnings": round_money(affiliate.total_earnings),
        "total_withdrawn": round_money(affiliate.total_withdrawn),
        "available_balance": round_money(affiliate.available_balance),
        "pending_commissions": round_money(sum_commissions(db, affiliate_id=affiliate_id, status="pending")),
        "reserved_withdrawals": round_money(
            sum_withdrawals(db, affiliate_id=affiliate_id, statuses=RESERVED_WITHDRAWAL_STATUSES)
        ),
    }
