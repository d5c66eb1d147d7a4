from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from affiliate_ledger.core.db import Base
from affiliate_ledger.models.mixins import TimestampMixin


JSON_TYPE = JSONB().with_variant(JSON, "sqlite")

AFFILIATE_STATUSES = ("active", "inactive", "suspended")
COMMISSION_STATUSES = ("pending", "approved", "cancelled")
WITHDRAWAL_STATUSES = ("pending", "approved", "rejected", "completed")


class AffiliateProgramSettings(TimestampMixin, Base):
    __tablename__ = "affiliate_program_settings"

    id = Column(Integer, primary_key=True, index=True)
    enabled = Column(Boolean, nullable=False, default=False)
    min_withdrawal_amount = Column(Numeric(12, 2), nullable=False, default=100)
    cookie_expiry_days = Column(Integer, nullable=False, default=30)
    commission_levels_json = Column(JSON_TYPE, nullable=False)


class Affiliate(TimestampMixin, Base):
    __tablename__ = "affiliates"
    __table_args__ = (
        UniqueConstraint("promo_code", name="uq_affiliates_promo_code"),
        UniqueConstraint("user_id", name="uq_affiliates_user"),
        Index("ix_affiliates_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    # Stored upper-cased; every lookup normalises its input the same way.
    promo_code = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")
    current_level = Column(Integer, nullable=False, default=1)
    total_orders = Column(Integer, nullable=False, default=0)
    delivered_orders = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    total_withdrawn = Column(Numeric(12, 2), nullable=False, default=0)
    available_balance = Column(Numeric(12, 2), nullable=False, default=0)
    assigned_coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliateCommission(TimestampMixin, Base):
    __tablename__ = "affiliate_commissions"
    __table_args__ = (
        UniqueConstraint("affiliate_id", "order_id", name="uq_affiliate_commissions_order"),
        Index("ix_affiliate_commissions_status", "status"),
        Index("ix_affiliate_commissions_order", "order_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id", ondelete="RESTRICT"), nullable=False, index=True)
    order_id = Column(String, nullable=False)
    level = Column(Integer, nullable=False)
    order_commissionable_total = Column(Numeric(12, 2), nullable=False)
    commission_percentage = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    approved_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliateWithdrawal(TimestampMixin, Base):
    __tablename__ = "affiliate_withdrawals"
    __table_args__ = (
        Index("ix_affiliate_withdrawals_affiliate", "affiliate_id"),
        Index("ix_affiliate_withdrawals_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    payment_method = Column(String, nullable=False)
    payment_details_json = Column(JSON_TYPE, nullable=True)
    requested_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
