"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Nothing here commits; the caller owns the
transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BookingModel,
    BookingTransitionModel,
    CommissionRecordModel,
    DriverModel,
    PaymentModel,
    ReviewItemModel,
)
from charter.domain.enums import OPEN_PAYMENT_STATUSES, PaymentStatus, PaymentType


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: str) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: str) -> Optional[BookingModel]:
        """SELECT ... FOR UPDATE, refreshing any copy already in the session."""
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_number(self, booking_number: str) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.booking_number == booking_number)
        )
        return result.scalar_one_or_none()

    async def recent_ids(self, limit: int) -> list[str]:
        result = await self.session.execute(
            select(BookingModel.id)
            .order_by(BookingModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, payment: PaymentModel) -> PaymentModel:
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def latest_for(
        self, booking_id: str, payment_type: PaymentType
    ) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.booking_id == booking_id,
                PaymentModel.payment_type == PaymentType(payment_type),
            )
            .order_by(PaymentModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_order_no(self, order_no: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.order_no == order_no)
        )
        return result.scalar_one_or_none()

    async def attempts_for(
        self, booking_id: str, payment_type: PaymentType
    ) -> list[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.booking_id == booking_id,
                PaymentModel.payment_type == PaymentType(payment_type),
            )
            .order_by(PaymentModel.id)
        )
        return list(result.scalars().all())

    async def has_completed(self, booking_id: str, payment_type: PaymentType) -> bool:
        result = await self.session.execute(
            select(PaymentModel.id)
            .where(
                PaymentModel.booking_id == booking_id,
                PaymentModel.payment_type == PaymentType(payment_type),
                PaymentModel.status == PaymentStatus.COMPLETED,
            )
            .limit(1)
        )
        return result.first() is not None

    async def supersede_open_attempts(
        self, booking_id: str, payment_type: PaymentType
    ) -> int:
        """Mark every pending/processing attempt cancelled.  Returns the count."""
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.booking_id == booking_id,
                PaymentModel.payment_type == PaymentType(payment_type),
                PaymentModel.status.in_(list(OPEN_PAYMENT_STATUSES)),
            )
            .values(
                status=PaymentStatus.CANCELLED,
                message="superseded by a new payment attempt",
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0


class CommissionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: CommissionRecordModel) -> CommissionRecordModel:
        self.session.add(record)
        await self.session.flush()
        return record

    async def for_booking(self, booking_id: str) -> list[CommissionRecordModel]:
        result = await self.session.execute(
            select(CommissionRecordModel)
            .where(CommissionRecordModel.booking_id == booking_id)
            .order_by(CommissionRecordModel.tier, CommissionRecordModel.id)
        )
        return list(result.scalars().all())


class TransitionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, record, source: str) -> BookingTransitionModel:
        row = BookingTransitionModel(
            booking_id=record.booking_id,
            from_status=record.from_status,
            to_status=record.to_status,
            event=record.event,
            source=source,
            occurred_at=record.at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def for_booking(self, booking_id: str) -> list[BookingTransitionModel]:
        result = await self.session.execute(
            select(BookingTransitionModel)
            .where(BookingTransitionModel.booking_id == booking_id)
            .order_by(BookingTransitionModel.id)
        )
        return list(result.scalars().all())


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def flag(
        self,
        kind: str,
        *,
        booking_id: Optional[str] = None,
        order_no: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> ReviewItemModel:
        item = ReviewItemModel(
            kind=kind, booking_id=booking_id, order_no=order_no, details=details or {}
        )
        self.session.add(item)
        await self.session.flush()
        return item

    async def open_items(self, limit: int = 100) -> list[ReviewItemModel]:
        result = await self.session.execute(
            select(ReviewItemModel)
            .where(ReviewItemModel.resolved.is_(False))
            .order_by(ReviewItemModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def least_busy_active(self) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.is_active.is_(True))
            .order_by(DriverModel.completed_trips, DriverModel.id)
            .limit(1)
        )
        return result.scalar_one_or_none()
