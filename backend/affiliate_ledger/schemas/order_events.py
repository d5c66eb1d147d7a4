from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel

from affiliate_ledger.schemas.affiliates import CommissionRead


class OrderCreatedEvent(BaseModel):
    type: Literal["order.created"]
    order_id: str
    commissionable_subtotal: float
    # Signed attribution token captured at checkout, if any.
    affiliate_attribution: Optional[str] = None


class OrderDeliveredEvent(BaseModel):
    type: Literal["order.delivered"]
    order_id: str


class OrderCancelledEvent(BaseModel):
    type: Literal["order.cancelled"]
    order_id: str


class OrderRefundedEvent(BaseModel):
    type: Literal["order.refunded"]
    order_id: str


# Each member pins `type` to a Literal, so validation picks exactly one.
OrderEvent = Union[OrderCreatedEvent, OrderDeliveredEvent, OrderCancelledEvent, OrderRefundedEvent]


class OrderEventResult(BaseModel):
    order_id: str
    type: str
    # Every commission the event touched; empty when the order had none.
    commissions: list[CommissionRead] = []
