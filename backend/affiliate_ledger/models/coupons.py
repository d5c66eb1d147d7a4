from sqlalchemy import Boolean, Column, Integer, Numeric, String, UniqueConstraint

from affiliate_ledger.core.db import Base
from affiliate_ledger.models.mixins import TimestampMixin


COUPON_DISCOUNT_TYPES = ("percent", "flat")


class Coupon(TimestampMixin, Base):
    """Minimal coupon record; only what the commission base needs."""

    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("code", name="uq_coupons_code"),)

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False)
    discount_type = Column(String, nullable=False, default="percent")
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
