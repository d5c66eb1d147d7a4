from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CommissionLevelPayload(BaseModel):
    percentage: float
    enabled: bool = True
    required_delivered_orders: int = 0
    max_commission: Optional[float] = None


class ProgramSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    min_withdrawal_amount: Optional[float] = None
    cookie_expiry_days: Optional[int] = None
    commission_levels: Optional[dict[int, CommissionLevelPayload]] = None


class ProgramSettingsRead(BaseModel):
    enabled: bool
    min_withdrawal_amount: float
    cookie_expiry_days: int
    commission_levels: dict[int, CommissionLevelPayload]
    updated_at: datetime | None = None
