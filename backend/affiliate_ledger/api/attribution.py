from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from affiliate_ledger.core.attribution import attribute, decode_token, encode_token, validate_token
from affiliate_ledger.core.config import settings
from affiliate_ledger.core.db import get_db
from affiliate_ledger.schemas.attribution import (
    AttributionRead,
    AttributionRequest,
    AttributionValidateRead,
    AttributionValidateRequest,
)


router = APIRouter(prefix="/attribution", tags=["attribution"])


@router.post("", response_model=AttributionRead)
def set_attribution(payload: AttributionRequest, db: Session = Depends(get_db)):
    existing = decode_token(payload.token)
    token = attribute(db, payload.promo_code, existing)
    if token is None:
        return AttributionRead(attributed=False, cookie_name=settings.ATTRIBUTION_COOKIE_NAME)
    return AttributionRead(
        attributed=True,
        token=encode_token(token),
        promo_code=token.promo_code,
        affiliate_id=token.affiliate_id,
        issued_at=token.issued_at,
        expires_at=token.expires_at,
        cookie_name=settings.ATTRIBUTION_COOKIE_NAME,
    )


@router.post("/validate", response_model=AttributionValidateRead)
def validate_attribution(payload: AttributionValidateRequest):
    token = decode_token(payload.token, allow_expired=True)
    if token is None:
        return AttributionValidateRead(status="invalid")
    return AttributionValidateRead(
        status=validate_token(token),
        promo_code=token.promo_code,
        affiliate_id=token.affiliate_id,
        expires_at=token.expires_at,
    )
