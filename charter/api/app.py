"""
FastAPI application factory.

* Registers routes for gateway payments, bookings and admin.
* Wires the per-booking locks, reconciler, payment initiator, trip event
  service and event dispatcher onto ``app.state``.
* Maps domain errors to HTTP status codes.
* Applies rate limiting to customer / driver routes (never to the gateway
  callback, which must always be acknowledged).
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charter.api.middleware import limiter
from charter.api.routes import admin, bookings, payments
from charter.config import GatewayConfig, settings
from charter.domain.errors import (
    BookingNotFound,
    CharterError,
    EventNotPermitted,
    InvalidTransition,
    LockTimeout,
    NoDriverAvailable,
    OrderNumberTooLong,
    PaymentNotAllowed,
)
from charter.infrastructure.database import async_session_factory
from charter.infrastructure.redis_client import build_booking_locks, close_pool
from charter.services.outbox import EventDispatcher, default_dispatcher
from charter.services.payments import PaymentInitiator
from charter.services.reconciler import SettlementReconciler
from charter.services.trips import TripEventService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    BookingNotFound: 404,
    EventNotPermitted: 403,
    InvalidTransition: 409,
    PaymentNotAllowed: 409,
    NoDriverAvailable: 409,
    OrderNumberTooLong: 422,
    LockTimeout: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the gateway mode on startup; release Redis connections on shutdown."""
    config = app.state.gateway_config
    logger.info(
        "Payment gateway %s (%s mode, signature policy=%s)",
        config.provider_name,
        "test" if config.is_test_mode else "live",
        config.signature_policy.value,
    )
    yield
    await close_pool()


async def _domain_error_handler(request: Request, exc: CharterError) -> JSONResponse:
    for error_cls in type(exc).__mro__:
        if error_cls in _ERROR_STATUS:
            return JSONResponse(
                status_code=_ERROR_STATUS[error_cls], content={"detail": str(exc)}
            )
    logger.error("Unmapped domain error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app(
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    locks=None,
    gateway_config: Optional[GatewayConfig] = None,
    dispatcher: Optional[EventDispatcher] = None,
) -> FastAPI:
    app = FastAPI(
        title="Charter Booking Payments API",
        description=(
            "Charter-ride booking lifecycle and GoMyPay settlement.  "
            "Applies gateway callbacks exactly once per booking, tracks "
            "every status change, and queues anomalies for manual review."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    session_factory = session_factory or async_session_factory
    locks = locks or build_booking_locks()
    config = gateway_config or settings.gateway_config()

    app.state.session_factory = session_factory
    app.state.locks = locks
    app.state.gateway_config = config
    app.state.dispatcher = dispatcher or default_dispatcher()
    app.state.reconciler = SettlementReconciler(session_factory, locks, config)
    app.state.initiator = PaymentInitiator(session_factory, locks, config)
    app.state.trips = TripEventService(
        session_factory,
        locks,
        overtime_grace_minutes=settings.overtime_grace_minutes,
        default_overtime_rate=settings.default_overtime_rate,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CharterError, _domain_error_handler)

    # Routers
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
