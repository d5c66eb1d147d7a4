"""
Promo code attribution.

A visitor who arrives with a promo code gets an ``AttributionToken``: which
affiliate referred them and until when that counts. The token is a value
passed through checkout; storing it (cookie, session, ...) is up to the
caller, which can use ``encode_token``/``decode_token`` for a signed JWT.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from affiliate_ledger.core.config import settings
from affiliate_ledger.core.errors import AffiliateError, InactiveError, NotFoundError, ValidationError
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.metrics import record_attribution
from affiliate_ledger.core.program import load_program_settings
from affiliate_ledger.core.time import utcnow
from affiliate_ledger.crud.affiliates import get_affiliate_by_promo_code


logger = get_structured_logger("affiliate_ledger.attribution")

TOKEN_VALID = "valid"
TOKEN_EXPIRED = "expired"
TOKEN_ALGORITHM = "HS256"

_PROMO_CODE_RE = re.compile(r"^[A-Z0-9]{8,15}$")


@dataclass(frozen=True)
class AffiliateRef:
    affiliate_id: int
    promo_code: str


@dataclass(frozen=True)
class AttributionToken:
    promo_code: str
    affiliate_id: int
    issued_at: datetime
    expires_at: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) < self.expires_at


def normalize_promo_code(code: str | None) -> str:
    return (code or "").strip().upper()


def is_valid_promo_code_format(code: str | None) -> bool:
    return bool(_PROMO_CODE_RE.match(normalize_promo_code(code)))


def resolve(db: Session, promo_code: str) -> AffiliateRef:
    code = normalize_promo_code(promo_code)
    if not is_valid_promo_code_format(code):
        raise ValidationError("Invalid promo code format", promo_code=code)
    affiliate = get_affiliate_by_promo_code(db, promo_code=code)
    if not affiliate:
        raise NotFoundError("Promo code not found", promo_code=code)
    if affiliate.status != "active":
        raise InactiveError("Affiliate is not active", promo_code=code, status=affiliate.status)
    return AffiliateRef(affiliate_id=affiliate.id, promo_code=affiliate.promo_code)


def issue_token(
    db: Session,
    promo_code: str,
    expiry_days: int | None = None,
    *,
    now: datetime | None = None,
) -> AttributionToken:
    program = load_program_settings(db)
    if not program.enabled:
        raise InactiveError("Affiliate program is disabled")
    days = program.cookie_expiry_days if expiry_days is None else int(expiry_days)
    if days <= 0:
        raise ValidationError("Attribution expiry must be at least one day", expiry_days=days)
    ref = resolve(db, promo_code)
    # JWT claims carry whole seconds.
    issued_at = (now or utcnow()).replace(microsecond=0)
    return AttributionToken(
        promo_code=ref.promo_code,
        affiliate_id=ref.affiliate_id,
        issued_at=issued_at,
        expires_at=issued_at + timedelta(days=days),
    )


def validate_token(token: AttributionToken, *, now: datetime | None = None) -> str:
    return TOKEN_VALID if token.is_valid(now) else TOKEN_EXPIRED


def choose_token(
    existing: AttributionToken | None,
    candidate: AttributionToken | None,
    *,
    now: datetime | None = None,
) -> AttributionToken | None:
    """Last valid touch wins; an expired token never survives."""
    now = now or utcnow()
    if candidate is not None and candidate.is_valid(now):
        return candidate
    if existing is not None and existing.is_valid(now):
        return existing
    return None


def attribute(
    db: Session,
    promo_code: str | None,
    existing: AttributionToken | None = None,
    *,
    now: datetime | None = None,
) -> AttributionToken | None:
    """Checkout-facing wrapper: failures fall back to whatever still applies."""
    now = now or utcnow()
    candidate = None
    if promo_code:
        try:
            candidate = issue_token(db, promo_code, now=now)
        except AffiliateError as exc:
            record_attribution(exc.code)
            logger.info(
                "attribution.ignored",
                extra={"promo_code": normalize_promo_code(promo_code), "reason": exc.code},
            )
        else:
            record_attribution("issued")
    return choose_token(existing, candidate, now=now)


def _epoch(value: datetime) -> int:
    return calendar.timegm(value.utctimetuple())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(int(value), timezone.utc).replace(tzinfo=None)


def encode_token(token: AttributionToken) -> str:
    claims = {
        "promo_code": token.promo_code,
        "affiliate_id": token.affiliate_id,
        "iat": _epoch(token.issued_at),
        "exp": _epoch(token.expires_at),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=TOKEN_ALGORITHM)


def decode_token(
    value: str | None,
    *,
    now: datetime | None = None,
    allow_expired: bool = False,
) -> AttributionToken | None:
    """Signed string back to a token; tampered, malformed or expired -> None.

    Without ``now`` expiry is checked by ``jwt.decode`` against the clock;
    an explicit ``now`` (replayed events, tests) is compared after decoding.
    """
    if not value:
        return None
    verify_exp = not allow_expired and now is None
    try:
        claims = jwt.decode(
            value,
            settings.SECRET_KEY,
            algorithms=[TOKEN_ALGORITHM],
            options={"verify_exp": verify_exp},
        )
        token = AttributionToken(
            promo_code=str(claims["promo_code"]),
            affiliate_id=int(claims["affiliate_id"]),
            issued_at=_from_epoch(claims["iat"]),
            expires_at=_from_epoch(claims["exp"]),
        )
    except ExpiredSignatureError:
        return None
    except JWTError:
        logger.warning("attribution.bad_token")
        return None
    except (KeyError, TypeError, ValueError):
        return None
    if not allow_expired and not token.is_valid(now):
        return None
    return token
