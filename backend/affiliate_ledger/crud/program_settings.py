from __future__ import annotations

from sqlalchemy.orm import Session

from affiliate_ledger.models.affiliates import AffiliateProgramSettings


def get_settings_row(db: Session) -> AffiliateProgramSettings | None:
    return db.query(AffiliateProgramSettings).order_by(AffiliateProgramSettings.id.asc()).first()


def upsert_settings_row(db: Session, *, payload: dict) -> AffiliateProgramSettings:
    row = get_settings_row(db)
    if not row:
        row = AffiliateProgramSettings(**payload)
        db.add(row)
    else:
        for key, value in payload.items():
            setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row
