"""create affiliate ledger tables

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "a1f0c2d3e4b5"
down_revision = None
branch_labels = None
depends_on = None


def _json_type():
    return postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def upgrade():
    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("discount_type", sa.String(), nullable=False, server_default="percent"),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
    )

    op.create_table(
        "affiliate_program_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_withdrawal_amount", sa.Numeric(12, 2), nullable=False, server_default="100"),
        sa.Column("cookie_expiry_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("commission_levels_json", _json_type(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "affiliates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("promo_code", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delivered_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_withdrawn", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("available_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("assigned_coupon_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["assigned_coupon_id"], ["coupons.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("promo_code", name="uq_affiliates_promo_code"),
        sa.UniqueConstraint("user_id", name="uq_affiliates_user"),
    )
    op.create_index("ix_affiliates_status", "affiliates", ["status"])

    op.create_table(
        "affiliate_commissions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("affiliate_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("order_commissionable_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("affiliate_id", "order_id", name="uq_affiliate_commissions_order"),
    )
    op.create_index("ix_affiliate_commissions_affiliate_id", "affiliate_commissions", ["affiliate_id"])
    op.create_index("ix_affiliate_commissions_status", "affiliate_commissions", ["status"])
    op.create_index("ix_affiliate_commissions_order", "affiliate_commissions", ["order_id"])

    op.create_table(
        "affiliate_withdrawals",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("affiliate_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(), nullable=False),
        sa.Column("payment_details_json", _json_type(), nullable=True),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_by", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_affiliate_withdrawals_affiliate", "affiliate_withdrawals", ["affiliate_id"])
    op.create_index("ix_affiliate_withdrawals_status", "affiliate_withdrawals", ["status"])

    op.alter_column("affiliates", "status", server_default=None)
    op.alter_column("affiliate_commissions", "status", server_default=None)
    op.alter_column("affiliate_withdrawals", "status", server_default=None)


def downgrade():
    op.drop_index("ix_affiliate_withdrawals_status", table_name="affiliate_withdrawals")
    op.drop_index("ix_affiliate_withdrawals_affiliate", table_name="affiliate_withdrawals")
    op.drop_table("affiliate_withdrawals")
    op.drop_index("ix_affiliate_commissions_order", table_name="affiliate_commissions")
    op.drop_index("ix_affiliate_commissions_status", table_name="affiliate_commissions")
    op.drop_index("ix_affiliate_commissions_affiliate_id", table_name="affiliate_commissions")
    op.drop_table("affiliate_commissions")
    op.drop_index("ix_affiliates_status", table_name="affiliates")
    op.drop_table("affiliates")
    op.drop_table("affiliate_program_settings")
    op.drop_table("coupons")
