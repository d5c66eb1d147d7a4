from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel


class AffiliateEnroll(BaseModel):
    user_id: str
    full_name: Optional[str] = None


class AffiliateStatusUpdate(BaseModel):
    status: str


class AffiliateCouponAssign(BaseModel):
    coupon_id: Optional[Union[int, str]] = None


class AffiliateRead(BaseModel):
    id: int
    user_id: str
    full_name: str | None = None
    promo_code: str
    link: str
    status: str
    current_level: int
    total_orders: int
    delivered_orders: int
    total_earnings: float
    total_withdrawn: float
    available_balance: float
    assigned_coupon_id: int | None = None
    created_at: datetime
    updated_at: datetime


class AffiliateListItem(AffiliateRead):
    total_commissions: int
    pending_commissions: int
    approved_commissions: int


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_page: int


class AffiliateListResponse(BaseModel):
    meta: PageMeta
    data: list[AffiliateListItem]


class AffiliateProgressRead(BaseModel):
    affiliate_id: int
    current_level: int
    delivered_orders: int
    next_level: int | None = None
    next_level_required_sales: int | None = None
    progress: float


class CommissionRead(BaseModel):
    id: int
    affiliate_id: int
    order_id: str
    level: int
    order_commissionable_total: float
    commission_percentage: float
    commission_amount: float
    status: str
    approved_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime


class CommissionListResponse(BaseModel):
    meta: PageMeta
    data: list[CommissionRead]


class CommissionCancel(BaseModel):
    reason: str = "cancelled"


class LedgerSummary(BaseModel):
    affiliate_id: int
    total_orders: int
    delivered_orders: int
    total_earnings: float
    total_withdrawn: float
    available_balance: float
    pending_commissions: float
    reserved_withdrawals: float


class LedgerReconcileRead(BaseModel):
    affiliate_id: int
    stored: dict[str, float]
    expected: dict[str, float]
    drift: dict[str, float]
    consistent: bool
