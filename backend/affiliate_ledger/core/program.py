"""
Program-wide affiliate settings.

The stored row is parsed into an immutable ``ProgramSettings`` every time an
operation needs it. Parsing validates everything at once, so a bad row is
never partially applied: callers either get a consistent snapshot or a
``ConfigurationError``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from affiliate_ledger.core.config import settings
from affiliate_ledger.core.errors import ConfigurationError, ValidationError
from affiliate_ledger.core.logging import get_structured_logger
from affiliate_ledger.core.money import round_money
from affiliate_ledger.crud.program_settings import get_settings_row, upsert_settings_row
from affiliate_ledger.models.affiliates import AffiliateProgramSettings


logger = get_structured_logger("affiliate_ledger.program")

MIN_LEVEL = 1
MAX_LEVEL = 5

DEFAULT_COMMISSION_LEVELS = {
    "1": {"percentage": 5, "enabled": True, "required_delivered_orders": 0},
    "2": {"percentage": 0, "enabled": False, "required_delivered_orders": 10},
    "3": {"percentage": 0, "enabled": False, "required_delivered_orders": 25},
    "4": {"percentage": 0, "enabled": False, "required_delivered_orders": 50},
    "5": {"percentage": 0, "enabled": False, "required_delivered_orders": 100},
}


class CommissionLevelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    percentage: Decimal = Field(ge=0, le=100)
    enabled: bool = True
    required_delivered_orders: int = Field(default=0, ge=0)
    # Optional per-level ceiling on a single commission.
    max_commission: Optional[Decimal] = Field(default=None, ge=0)


class ProgramSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    min_withdrawal_amount: Decimal = Field(default=Decimal("100"), ge=0)
    cookie_expiry_days: int = Field(default=30, gt=0)
    commission_levels: dict[int, CommissionLevelConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_levels(self):
        previous = None
        for level in sorted(self.commission_levels):
            if level < MIN_LEVEL or level > MAX_LEVEL:
                raise ValueError(f"level {level} is outside {MIN_LEVEL}-{MAX_LEVEL}")
            threshold = self.commission_levels[level].required_delivered_orders
            if previous is not None and threshold < previous:
                raise ValueError(f"level {level} threshold {threshold} is below the previous level's {previous}")
            previous = threshold
        return self

    def level(self, level: int) -> CommissionLevelConfig | None:
        return self.commission_levels.get(level)

    def to_storage(self) -> dict[str, Any]:
        return {
            str(level): {
                "percentage": float(config.percentage),
                "enabled": config.enabled,
                "required_delivered_orders": config.required_delivered_orders,
                "max_commission": float(config.max_commission) if config.max_commission is not None else None,
            }
            for level, config in sorted(self.commission_levels.items())
        }


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts) or "invalid settings"


def parse_program_settings(raw: dict[str, Any]) -> ProgramSettings:
    try:
        return ProgramSettings.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigurationError("Affiliate settings are invalid", detail=_describe(exc)) from exc


def _row_to_raw(row: AffiliateProgramSettings) -> dict[str, Any]:
    return {
        "enabled": bool(row.enabled),
        "min_withdrawal_amount": row.min_withdrawal_amount,
        "cookie_expiry_days": row.cookie_expiry_days,
        "commission_levels": row.commission_levels_json if isinstance(row.commission_levels_json, dict) else {},
    }


def default_settings_payload() -> dict[str, Any]:
    return {
        "enabled": settings.AFFILIATE_DEFAULT_ENABLED,
        "min_withdrawal_amount": round_money(settings.AFFILIATE_DEFAULT_MIN_WITHDRAWAL),
        "cookie_expiry_days": settings.AFFILIATE_DEFAULT_COOKIE_DAYS,
        "commission_levels_json": {key: dict(value) for key, value in DEFAULT_COMMISSION_LEVELS.items()},
    }


def get_effective_settings_row(db: Session) -> AffiliateProgramSettings:
    row = get_settings_row(db)
    if not row:
        row = upsert_settings_row(db, payload=default_settings_payload())
    return row


def load_program_settings(db: Session) -> ProgramSettings:
    row = get_effective_settings_row(db)
    try:
        return parse_program_settings(_row_to_raw(row))
    except ConfigurationError as exc:
        logger.error(
            "program.settings_invalid",
            extra={"settings_id": row.id, "detail": exc.context.get("detail")},
        )
        raise


def update_program_settings(db: Session, *, updates: dict[str, Any]) -> ProgramSettings:
    """Merge ``updates`` over the stored row; persist only if the result validates."""
    row = get_effective_settings_row(db)
    candidate = _row_to_raw(row)
    for key in ("enabled", "min_withdrawal_amount", "cookie_expiry_days", "commission_levels"):
        if key in updates and updates[key] is not None:
            candidate[key] = updates[key]
    try:
        parsed = parse_program_settings(candidate)
    except ConfigurationError as exc:
        raise ValidationError(exc.message, **exc.context) from exc

    upsert_settings_row(
        db,
        payload={
            "enabled": parsed.enabled,
            "min_withdrawal_amount": round_money(parsed.min_withdrawal_amount),
            "cookie_expiry_days": parsed.cookie_expiry_days,
            "commission_levels_json": parsed.to_storage(),
        },
    )
    logger.info(
        "program.settings_updated",
        extra={"enabled": parsed.enabled, "levels": sorted(parsed.commission_levels)},
    )
    return parsed
