from __future__ import annotations

from affiliate_ledger.core.affiliates import build_affiliate_link
from affiliate_ledger.core.money import money_to_float
from affiliate_ledger.schemas.affiliates import AffiliateRead, CommissionRead
from affiliate_ledger.schemas.withdrawals import WithdrawalRead


def affiliate_read(affiliate) -> AffiliateRead:
    return AffiliateRead(
        id=affiliate.id,
        user_id=affiliate.user_id,
        full_name=affiliate.full_name,
        promo_code=affiliate.promo_code,
        link=build_affiliate_link(affiliate.promo_code),
        status=affiliate.status,
        current_level=int(affiliate.current_level or 1),
        total_orders=int(affiliate.total_orders or 0),
        delivered_orders=int(affiliate.delivered_orders or 0),
        total_earnings=money_to_float(affiliate.total_earnings),
        total_withdrawn=money_to_float(affiliate.total_withdrawn),
        available_balance=money_to_float(affiliate.available_balance),
        assigned_coupon_id=affiliate.assigned_coupon_id,
        created_at=affiliate.created_at,
        updated_at=affiliate.updated_at,
    )


def commission_read(commission) -> CommissionRead:
    return CommissionRead(
        id=commission.id,
        affiliate_id=commission.affiliate_id,
        order_id=commission.order_id,
        level=commission.level,
        order_commissionable_total=money_to_float(commission.order_commissionable_total),
        commission_percentage=money_to_float(commission.commission_percentage),
        commission_amount=money_to_float(commission.commission_amount),
        status=commission.status,
        approved_at=commission.approved_at,
        cancelled_at=commission.cancelled_at,
        cancel_reason=commission.cancel_reason,
        created_at=commission.created_at,
    )


def withdrawal_read(withdrawal) -> WithdrawalRead:
    return WithdrawalRead(
        id=withdrawal.id,
        affiliate_id=withdrawal.affiliate_id,
        amount=money_to_float(withdrawal.amount),
        status=withdrawal.status,
        payment_method=withdrawal.payment_method,
        payment_details=withdrawal.payment_details_json if isinstance(withdrawal.payment_details_json, dict) else None,
        requested_at=withdrawal.requested_at,
        processed_at=withdrawal.processed_at,
        processed_by=withdrawal.processed_by,
        notes=withdrawal.notes,
    )
