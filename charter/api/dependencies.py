"""FastAPI dependency injection helpers."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from charter.config import GatewayConfig
from charter.services.outbox import EventDispatcher
from charter.services.payments import PaymentInitiator
from charter.services.reconciler import SettlementReconciler
from charter.services.trips import TripEventService


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_gateway_config(request: Request) -> GatewayConfig:
    return request.app.state.gateway_config


def get_reconciler(request: Request) -> SettlementReconciler:
    return request.app.state.reconciler


def get_initiator(request: Request) -> PaymentInitiator:
    return request.app.state.initiator


def get_trip_service(request: Request) -> TripEventService:
    return request.app.state.trips


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher
