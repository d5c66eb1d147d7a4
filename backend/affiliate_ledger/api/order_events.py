from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from affiliate_ledger.api.dependencies import require_admin
from affiliate_ledger.api.serializers import commission_read
from affiliate_ledger.core.db import get_db
from affiliate_ledger.core.order_events import OrderEventProcessor
from affiliate_ledger.schemas.order_events import OrderEvent, OrderEventResult


router = APIRouter(prefix="/order-events", tags=["order-events"])


@router.post("", response_model=OrderEventResult)
def receive_order_event(
    event: OrderEvent,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin()),
):
    commissions = OrderEventProcessor(db).apply(event)
    return OrderEventResult(
        order_id=event.order_id,
        type=event.type,
        commissions=[commission_read(row) for row in commissions],
    )
