from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AttributionRequest(BaseModel):
    promo_code: Optional[str] = None
    # Previously issued signed token, if the visitor already has one.
    token: Optional[str] = None


class AttributionValidateRequest(BaseModel):
    token: str


class AttributionRead(BaseModel):
    attributed: bool
    token: str | None = None
    promo_code: str | None = None
    affiliate_id: int | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    cookie_name: str


class AttributionValidateRead(BaseModel):
    status: str
    promo_code: str | None = None
    affiliate_id: int | None = None
    expires_at: datetime | None = None
