from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CouponCreate(BaseModel):
    code: str
    discount_type: str = "percent"
    discount_value: float
    is_active: bool = True


class CouponRead(BaseModel):
    id: int
    code: str
    discount_type: str
    discount_value: float
    is_active: bool
    created_at: datetime
