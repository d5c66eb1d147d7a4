from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_name: Optional[str] = Field(default=None, alias="accountName")
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    bank_name: Optional[str] = Field(default=None, alias="bankName")
    mobile_number: Optional[str] = Field(default=None, alias="mobileNumber")


class WithdrawalCreate(BaseModel):
    amount: float
    payment_method: str
    payment_details: Optional[PaymentDetails] = None


class WithdrawalProcess(BaseModel):
    processed_by: str
    notes: Optional[str] = None


class WithdrawalRead(BaseModel):
    id: int
    affiliate_id: int
    amount: float
    status: str
    payment_method: str
    payment_details: dict | None = None
    requested_at: datetime
    processed_at: datetime | None = None
    processed_by: str | None = None
    notes: str | None = None
