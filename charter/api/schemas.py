"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from charter.domain.enums import BookingEvent, PaymentType


# ── Requests ──────────────────────────────────────────────────────────


class PaymentInitRequest(BaseModel):
    payment_type: PaymentType
    buyer_name: str = Field("", max_length=64)
    buyer_phone: str = Field("", max_length=32)
    buyer_email: str = Field("", max_length=120)
    buyer_memo: str = Field("", max_length=120)


class BookingEventRequest(BaseModel):
    event: BookingEvent
    driver_id: Optional[str] = Field(
        None,
        max_length=36,
        description="Driver to assign; omitted means the dispatcher picks one.",
    )
    reason: Optional[str] = Field(None, max_length=255)


# ── Responses ─────────────────────────────────────────────────────────


class PaymentLinkResponse(BaseModel):
    payment_id: int
    transaction_id: str
    order_no: str
    amount: Decimal
    payment_url: str
    expires_at: datetime


class BookingResponse(BaseModel):
    id: str
    booking_number: str
    customer_id: str
    driver_id: Optional[str] = None
    status: str
    status_display: str
    available_events: list[str] = []
    deposit_amount: Decimal
    balance_amount: Decimal
    overtime_fee_amount: Decimal
    tip_amount: Decimal
    total_amount: Decimal
    commission_amount: Decimal
    needs_review: bool = False
    deposit_paid_at: Optional[datetime] = None
    trip_ended_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BookingEventResponse(BaseModel):
    booking_id: str
    from_status: str
    to_status: str
    driver_id: Optional[str] = None
    overtime_fee: Decimal


class ReviewItemResponse(BaseModel):
    id: int
    kind: str
    booking_id: Optional[str] = None
    order_no: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
