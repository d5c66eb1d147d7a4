from __future__ import annotations

import secrets
import string

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from affiliate_ledger.core.config import settings
from affiliate_ledger.core.errors import InactiveError, ValidationError
from affiliate_ledger.core.ledger import require_affiliate, run_ledger_transaction
from affiliate_ledger.core.levels import calculate_level, next_level_progress
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.program import load_program_settings
from affiliate_ledger.core.time import utcnow
from affiliate_ledger.crud.affiliates import (
    commission_counts_by_status,
    count_affiliates,
    create_affiliate,
    get_affiliate_by_promo_code,
    get_affiliate_by_user,
    list_affiliates,
)
from affiliate_ledger.models.affiliates import AFFILIATE_STATUSES, Affiliate


logger = get_structured_logger("affiliate_ledger.affiliates")

_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10
MIN_CODE_LENGTH = 8


def _alnum_upper(value: str | None) -> str:
    return "".join(ch for ch in (value or "") if ch.isascii() and ch.isalnum()).upper()


def _random_chars(count: int) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(count))


def generate_promo_code(user_id: str, full_name: str | None = None) -> str:
    name_part = _alnum_upper(full_name)[:3] or "AFF"
    id_part = _alnum_upper(user_id)[-6:]
    code = f"{name_part}{id_part}{_random_chars(3)}"
    if len(code) < MIN_CODE_LENGTH:
        code += _random_chars(MIN_CODE_LENGTH - len(code))
    return code


def _fallback_promo_code() -> str:
    stamp = _alnum_upper(format(int(utcnow().timestamp() * 1000), "x"))
    return f"AFF{stamp}{_random_chars(2)}"[:15]


def build_affiliate_link(promo_code: str) -> str:
    base = settings.APP_BASE_URL or "http://localhost:3000"
    return f"{base.rstrip('/')}/?ref={promo_code}"


def enroll_affiliate(db: Session, *, user_id: str, full_name: str | None = None) -> Affiliate:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationError("user_id is required")
    program = load_program_settings(db)
    if not program.enabled:
        raise InactiveError("Affiliate program is not enabled")
    if get_affiliate_by_user(db, user_id=user_id):
        raise ValidationError("Affiliate account already exists", user_id=user_id)

    promo_code = generate_promo_code(user_id, full_name)
    attempts = 0
    while get_affiliate_by_promo_code(db, promo_code=promo_code):
        attempts += 1
        if attempts > MAX_CODE_ATTEMPTS:
            promo_code = _fallback_promo_code()
            break
        promo_code = generate_promo_code(user_id, full_name)

    try:
        affiliate = create_affiliate(db, user_id=user_id, full_name=full_name, promo_code=promo_code)
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Affiliate account already exists", user_id=user_id) from exc
    logger.info(
        "affiliate.enrolled",
        extra={"affiliate_id": affiliate.id, "user_id": user_id, "promo_code": promo_code},
    )
    return affiliate


def set_affiliate_status(db: Session, *, affiliate_id: int, status: str) -> Affiliate:
    if status not in AFFILIATE_STATUSES:
        raise ValidationError("Invalid affiliate status", status=status)

    def _set_status() -> Affiliate:
        affiliate = require_affiliate(db, affiliate_id)
        affiliate.status = status
        return affiliate

    affiliate = run_ledger_transaction(db, _set_status, name="set_affiliate_status")
    db.refresh(affiliate)
    logger.info("affiliate.status_changed", extra={"affiliate_id": affiliate_id, "status": status})
    return affiliate


def build_affiliate_progress(db: Session, *, affiliate_id: int) -> dict:
    affiliate = require_affiliate(db, affiliate_id)
    program = load_program_settings(db)
    delivered = int(affiliate.delivered_orders or 0)
    level = calculate_level(delivered, program)
    progress = next_level_progress(level, delivered, program)
    return {
        "affiliate_id": affiliate.id,
        "current_level": level,
        "delivered_orders": delivered,
        "next_level": progress.next_level,
        "next_level_required_sales": progress.required_sales,
        "progress": progress.progress_fraction,
    }


def list_affiliates_with_stats(
    db: Session,
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 50), 1), 200)
    total = count_affiliates(db, status=status, search=search)
    rows = list_affiliates(db, status=status, search=search, offset=(page - 1) * limit, limit=limit)
    counts = commission_counts_by_status(db, affiliate_ids=[row.id for row in rows])
    data = []
    for row in rows:
        by_status = counts.get(row.id, {})
        data.append(
            {
                "affiliate": row,
                "total_commissions": sum(by_status.values()),
                "pending_commissions": by_status.get("pending", 0),
                "approved_commissions": by_status.get("approved", 0),
            }
        )
    return {
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_page": (total + limit - 1) // limit,
        },
        "data": data,
    }
