"""
Booking endpoints
=================

GET  /api/v1/bookings/{booking_id}           -- status, money fields, next events
POST /api/v1/bookings/{booking_id}/payments  -- open a deposit / balance attempt
POST /api/v1/bookings/{booking_id}/events    -- driver / customer trip events
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from charter.api.dependencies import (
    get_db,
    get_dispatcher,
    get_initiator,
    get_trip_service,
)
from charter.api.middleware import limiter
from charter.api.schemas import (
    BookingEventRequest,
    BookingEventResponse,
    BookingResponse,
    ErrorResponse,
    PaymentInitRequest,
    PaymentLinkResponse,
)
from charter.config import settings
from charter.domain.settlement import money
from charter.domain.state_machine import BookingStateMachine
from charter.infrastructure.repositories import BookingRepository
from charter.services.outbox import EventDispatcher
from charter.services.payments import BuyerInfo, PaymentInitiator
from charter.services.trips import TripEventService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking status and amounts",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: str,
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingRepository(db).get_by_id(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    status = booking.status
    return BookingResponse(
        id=booking.id,
        booking_number=booking.booking_number,
        customer_id=booking.customer_id,
        driver_id=booking.driver_id,
        status=status.value,
        status_display=BookingStateMachine.display_name(status),
        available_events=sorted(
            e.value for e in BookingStateMachine.available_events(status)
        ),
        deposit_amount=money(booking.deposit_amount),
        balance_amount=money(booking.balance_amount),
        overtime_fee_amount=money(booking.overtime_fee_amount),
        tip_amount=money(booking.tip_amount),
        total_amount=money(booking.total_amount),
        commission_amount=money(booking.commission_amount),
        needs_review=booking.needs_review,
        deposit_paid_at=booking.deposit_paid_at,
        trip_ended_at=booking.trip_ended_at,
        completed_at=booking.completed_at,
        created_at=booking.created_at,
    )


@router.post(
    "/{booking_id}/payments",
    status_code=201,
    response_model=PaymentLinkResponse,
    responses={409: {"model": ErrorResponse}},
    summary="Open a payment attempt",
    description=(
        "Cancels any attempt still waiting on the gateway for the same "
        "payment type and returns a signed payment link."
    ),
)
@limiter.limit(settings.rate_limit)
async def create_payment(
    request: Request,
    booking_id: str,
    body: PaymentInitRequest,
    initiator: PaymentInitiator = Depends(get_initiator),
):
    link = await initiator.initiate(
        booking_id,
        body.payment_type,
        buyer=BuyerInfo(
            name=body.buyer_name,
            phone=body.buyer_phone,
            email=body.buyer_email,
            memo=body.buyer_memo,
        ),
    )
    return PaymentLinkResponse(
        payment_id=link.payment_id,
        transaction_id=link.transaction_id,
        order_no=link.order_no,
        amount=link.amount,
        payment_url=link.url,
        expires_at=link.expires_at,
    )


@router.post(
    "/{booking_id}/events",
    response_model=BookingEventResponse,
    summary="Apply a trip lifecycle event",
    responses={
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Event not accepted in the current status."},
    },
)
@limiter.limit(settings.rate_limit)
async def apply_event(
    request: Request,
    booking_id: str,
    body: BookingEventRequest,
    background_tasks: BackgroundTasks,
    trips: TripEventService = Depends(get_trip_service),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    result = await trips.apply(
        booking_id, body.event, driver_id=body.driver_id, reason=body.reason
    )
    background_tasks.add_task(dispatcher.dispatch, result.events)
    return BookingEventResponse(
        booking_id=result.booking_id,
        from_status=result.from_status.value,
        to_status=result.to_status.value,
        driver_id=result.driver_id,
        overtime_fee=result.overtime_fee,
    )
