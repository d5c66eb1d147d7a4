"""
Commission amounts.

The base is the order's commissionable subtotal: after coupon discount,
before shipping and tax. Callers compute it (see ``core.coupons``) before
asking for a commission.
"""

from __future__ import annotations

from decimal import Decimal

from affiliate_ledger.core.money import ZERO, round_money, to_decimal
from affiliate_ledger.core.program import ProgramSettings


def commission_rate(level: int, program: ProgramSettings | None) -> Decimal:
    config = program.level(level) if program else None
    if config is None or not config.enabled:
        return ZERO
    return round_money(config.percentage)


def compute_commission(commissionable_subtotal, level: int, program: ProgramSettings | None) -> Decimal:
    config = program.level(level) if program else None
    if config is None or not config.enabled:
        return ZERO
    subtotal = to_decimal(commissionable_subtotal)
    if subtotal <= 0:
        return ZERO
    amount = round_money(subtotal * to_decimal(config.percentage) / Decimal(100))
    if config.max_commission is not None:
        amount = min(amount, round_money(config.max_commission))
    return amount
