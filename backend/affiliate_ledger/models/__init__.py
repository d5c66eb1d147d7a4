from .coupons import Coupon
from .affiliates import (
    Affiliate,
    AffiliateCommission,
    AffiliateProgramSettings,
    AffiliateWithdrawal,
)
