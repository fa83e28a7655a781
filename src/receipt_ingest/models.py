from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ReceiptStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    ARCHIVED = "ARCHIVED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    DEBIT = "DEBIT"
    UNKNOWN = "UNKNOWN"


class LineItem(BaseModel):
    name: str
    quantity: int = 1
    unit_price: Decimal | None = None
    total_price: Decimal | None = None
    category: str | None = None


class RecognitionResult(BaseModel):
    extracted_text: str
    confidence: float = Field(ge=0.0, le=1.0)
    processed_at: dt.datetime
    ocr_engine: str
    raw_data: dict = Field(default_factory=dict)


class PaymentInfo(BaseModel):
    method: PaymentMethod = PaymentMethod.UNKNOWN
    card_type: str | None = None
    last_four_digits: str | None = None
    tip: Decimal | None = None
    tax: Decimal | None = None


class Receipt(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(min_length=1)
    merchant_name: str | None = None
    total_amount: Decimal | None = None
    date: dt.date | None = None
    category_id: str | None = None
    description: str | None = None
    image_url: str | None = None
    original_filename: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    ocr_data: RecognitionResult | None = None
    payment_info: PaymentInfo | None = None
    status: ReceiptStatus = ReceiptStatus.PENDING
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("total_amount")
    @classmethod
    def _amount_positive(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < Decimal("0.01"):
            raise ValueError("total_amount must be at least 0.01")
        return value

    @field_validator("date")
    @classmethod
    def _date_not_in_future(cls, value: dt.date | None) -> dt.date | None:
        if value is not None and value > dt.date.today():
            raise ValueError("date cannot be in the future")
        return value
