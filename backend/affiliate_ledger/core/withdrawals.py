"""
Withdrawal request workflow.

    pending --approve--> approved --complete--> completed
       |                    |
       +------reject--------+------> rejected

Creating a request reserves the amount by taking it out of
``available_balance`` straight away. Rejecting releases it. Completing moves
it into ``total_withdrawn``; the available balance does not move again.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from affiliate_ledger.core.errors import InvalidStateError, NotFoundError, ValidationError
from affiliate_ledger.core.ledger import require_affiliate, run_ledger_transaction
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.metrics import record_withdrawal_event
from affiliate_ledger.core.money import ZERO, round_money
from affiliate_ledger.core.program import load_program_settings
from affiliate_ledger.core.time import utcnow
from affiliate_ledger.crud.withdrawals import get_withdrawal, list_withdrawals
from affiliate_ledger.models.affiliates import AffiliateWithdrawal


logger = get_structured_logger("affiliate_ledger.withdrawals")

BANK_METHOD_HINTS = ("bank", "transfer")
MOBILE_METHOD_HINTS = ("mobile", "bkash", "nagad", "rocket")
PAYMENT_DETAIL_FIELDS = ("account_name", "account_number", "bank_name", "mobile_number")


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def normalize_payment_details(payment_method: str, payment_details: dict | None) -> dict[str, str]:
    if not payment_details or not isinstance(payment_details, dict):
        raise ValidationError("Payment details are required")

    details = {key: _clean(payment_details.get(key)) for key in PAYMENT_DETAIL_FIELDS}
    method = payment_method.lower()

    if any(hint in method for hint in BANK_METHOD_HINTS):
        if not details["account_number"]:
            raise ValidationError("Account number is required for bank transfer")
        if not details["bank_name"]:
            raise ValidationError("Bank name is required for bank transfer")
        if not details["account_name"]:
            raise ValidationError("Account name is required for bank transfer")

    if any(hint in method for hint in MOBILE_METHOD_HINTS):
        if not details["mobile_number"]:
            raise ValidationError("Mobile number is required for mobile banking")

    return {key: value for key, value in details.items() if value is not None}


def _require_withdrawal(db: Session, withdrawal_id: int) -> AffiliateWithdrawal:
    withdrawal = get_withdrawal(db, withdrawal_id=withdrawal_id)
    if not withdrawal:
        raise NotFoundError("Withdrawal not found", withdrawal_id=withdrawal_id)
    return withdrawal


def _log_transition(event: str, withdrawal: AffiliateWithdrawal, **extra: Any) -> None:
    record_withdrawal_event(event)
    logger.info(
        f"withdrawal.{event}",
        extra={
            "withdrawal_id": withdrawal.id,
            "affiliate_id": withdrawal.affiliate_id,
            "amount": withdrawal.amount,
            **extra,
        },
    )


def create_withdrawal(
    db: Session,
    *,
    affiliate_id: int,
    amount,
    payment_method: str,
    payment_details: dict | None,
) -> AffiliateWithdrawal:
    try:
        amount = round_money(amount)
    except TypeError as exc:
        raise ValidationError("Amount must be a number") from exc
    if amount <= ZERO:
        raise ValidationError("Amount is required and must be greater than 0")
    payment_method = _clean(payment_method)
    if not payment_method:
        raise ValidationError("Payment method is required")
    details = normalize_payment_details(payment_method, payment_details)

    def _create() -> AffiliateWithdrawal:
        program = load_program_settings(db)
        minimum = round_money(program.min_withdrawal_amount)
        if amount < minimum:
            raise ValidationError(
                f"Minimum withdrawal amount is {minimum}",
                minimum=str(minimum),
                amount=str(amount),
            )
        affiliate = require_affiliate(db, affiliate_id)
        available = round_money(affiliate.available_balance)
        if amount > available:
            raise ValidationError(
                f"Insufficient balance. Available: {available}",
                available_balance=str(available),
                amount=str(amount),
            )

        withdrawal = AffiliateWithdrawal(
            affiliate_id=affiliate.id,
            amount=amount,
            status="pending",
            payment_method=payment_method,
            payment_details_json=details,
            requested_at=utcnow(),
        )
        db.add(withdrawal)
        affiliate.available_balance = available - amount
        db.flush()
        return withdrawal

    withdrawal = run_ledger_transaction(db, _create, name="create_withdrawal")
    db.refresh(withdrawal)
    _log_transition("created", withdrawal, payment_method=payment_method)
    return withdrawal


def approve_withdrawal(db: Session, *, withdrawal_id: int, processed_by: str) -> AffiliateWithdrawal:
    def _approve() -> AffiliateWithdrawal:
        withdrawal = _require_withdrawal(db, withdrawal_id)
        if withdrawal.status != "pending":
            raise InvalidStateError(
                "Only pending withdrawals can be approved",
                current_status=withdrawal.status,
                withdrawal_id=withdrawal_id,
            )
        withdrawal.status = "approved"
        withdrawal.processed_at = utcnow()
        withdrawal.processed_by = processed_by
        return withdrawal

    withdrawal = run_ledger_transaction(db, _approve, name="approve_withdrawal")
    db.refresh(withdrawal)
    _log_transition("approved", withdrawal, processed_by=processed_by)
    return withdrawal


def reject_withdrawal(
    db: Session,
    *,
    withdrawal_id: int,
    processed_by: str,
    notes: str | None = None,
) -> AffiliateWithdrawal:
    def _reject() -> AffiliateWithdrawal:
        withdrawal = _require_withdrawal(db, withdrawal_id)
        if withdrawal.status not in ("pending", "approved"):
            raise InvalidStateError(
                "Only pending or approved withdrawals can be rejected",
                current_status=withdrawal.status,
                withdrawal_id=withdrawal_id,
            )
        affiliate = require_affiliate(db, withdrawal.affiliate_id)
        affiliate.available_balance = round_money(affiliate.available_balance) + round_money(withdrawal.amount)
        withdrawal.status = "rejected"
        withdrawal.processed_at = utcnow()
        withdrawal.processed_by = processed_by
        if notes:
            withdrawal.notes = notes
        return withdrawal

    withdrawal = run_ledger_transaction(db, _reject, name="reject_withdrawal")
    db.refresh(withdrawal)
    _log_transition("rejected", withdrawal, processed_by=processed_by)
    return withdrawal


def complete_withdrawal(
    db: Session,
    *,
    withdrawal_id: int,
    processed_by: str,
    notes: str | None = None,
) -> AffiliateWithdrawal:
    def _complete() -> AffiliateWithdrawal:
        withdrawal = _require_withdrawal(db, withdrawal_id)
        if withdrawal.status != "approved":
            raise InvalidStateError(
                "Only approved withdrawals can be completed",
                current_status=withdrawal.status,
                withdrawal_id=withdrawal_id,
            )
        affiliate = require_affiliate(db, withdrawal.affiliate_id)
        affiliate.total_withdrawn = round_money(affiliate.total_withdrawn) + round_money(withdrawal.amount)
        withdrawal.status = "completed"
        withdrawal.processed_at = utcnow()
        withdrawal.processed_by = processed_by
        if notes:
            withdrawal.notes = notes
        return withdrawal

    withdrawal = run_ledger_transaction(db, _complete, name="complete_withdrawal")
    db.refresh(withdrawal)
    _log_transition("completed", withdrawal, processed_by=processed_by)
    return withdrawal


def list_affiliate_withdrawals(
    db: Session,
    *,
    affiliate_id: int | None = None,
    status: str | None = None,
) -> list[AffiliateWithdrawal]:
    if affiliate_id is not None:
        require_affiliate(db, affiliate_id)
    return list_withdrawals(db, affiliate_id=affiliate_id, status=status)
