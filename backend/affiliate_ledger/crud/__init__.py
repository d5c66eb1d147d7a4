from .affiliates import (
    create_affiliate,
    get_affiliate,
    get_affiliate_by_promo_code,
    get_affiliate_by_user,
    list_affiliates,
)
from .commissions import get_commission, get_commission_for_order, list_commissions_for_order
from .coupons import create_coupon, get_coupon
from .program_settings import get_settings_row, upsert_settings_row
from .withdrawals import get_withdrawal, list_withdrawals
