"""
Commission tiers unlocked by cumulative delivered orders.

Both functions are pure and never raise: an empty or missing level table
simply leaves everyone on level 1 with nothing further to unlock.
"""

from __future__ import annotations

from dataclasses import dataclass

from affiliate_ledger.core.program import MIN_LEVEL, ProgramSettings


@dataclass(frozen=True)
class LevelProgress:
    next_level: int | None
    required_sales: int | None
    progress_fraction: float


def _levels(program: ProgramSettings | None):
    if program is None:
        return []
    return sorted(
        program.commission_levels.items(),
        key=lambda item: (item[1].required_delivered_orders, item[0]),
    )


def calculate_level(delivered_orders: int, program: ProgramSettings | None) -> int:
    delivered = max(int(delivered_orders or 0), 0)
    best = MIN_LEVEL
    for level, config in _levels(program):
        if not config.enabled:
            continue
        if delivered >= config.required_delivered_orders and level > best:
            best = level
    return best


def next_level_progress(
    current_level: int,
    delivered_orders: int,
    program: ProgramSettings | None,
) -> LevelProgress:
    delivered = max(int(delivered_orders or 0), 0)
    candidates = sorted(
        level
        for level, config in (program.commission_levels.items() if program else [])
        if config.enabled and level > current_level
    )
    if not candidates:
        return LevelProgress(next_level=None, required_sales=None, progress_fraction=1.0)

    next_level = candidates[0]
    required = program.commission_levels[next_level].required_delivered_orders
    if required <= 0:
        fraction = 1.0
    else:
        fraction = min(1.0, max(0.0, delivered / required))
    return LevelProgress(next_level=next_level, required_sales=required, progress_fraction=fraction)
