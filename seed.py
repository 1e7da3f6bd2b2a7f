"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 5 sample drivers
  - 4 sample bookings (awaiting deposit, deposit paid, trip ended, completed)
  - commission snapshots for the promo-code booking
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import text

from charter.domain.enums import BookingStatus, CommissionTier, CommissionType
from charter.infrastructure.database import async_session_factory, engine
from charter.infrastructure.models import (
    BookingModel,
    CommissionRecordModel,
    DriverModel,
)

DRIVERS = [
    {"name": "Chen Wei-Ting", "phone": "0912000001", "completed_trips": 42},
    {"name": "Lin Chia-Hao", "phone": "0912000002", "completed_trips": 17},
    {"name": "Wang Shu-Fen", "phone": "0912000003", "completed_trips": 3},
    {"name": "Huang Jun-Jie", "phone": "0912000004", "completed_trips": 28},
    {"name": "Tsai Mei-Ling", "phone": "0912000005", "completed_trips": 0, "is_active": False},
]


def _booking_number(offset_ms: int) -> str:
    return f"BK{int(time.time() * 1000) - offset_ms}"


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM drivers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Drivers ───────────────────────────────────────────────────
        driver_models = []
        for d in DRIVERS:
            m = DriverModel(
                name=d["name"],
                phone=d["phone"],
                completed_trips=d["completed_trips"],
                is_active=d.get("is_active", True),
            )
            session.add(m)
            driver_models.append(m)
        await session.flush()
        print(f"  Created {len(driver_models)} drivers")

        # ── Bookings ──────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        bookings_data = [
            {
                "status": BookingStatus.PENDING_PAYMENT,
                "price": Decimal("6000"), "deposit": Decimal("1800"),
                "start": now + timedelta(days=3), "hours": 8,
                "driver": None,
            },
            {
                "status": BookingStatus.PAID_DEPOSIT,
                "price": Decimal("4500"), "deposit": Decimal("1350"),
                "start": now + timedelta(days=1), "hours": 6,
                "driver": None,
            },
            {
                "status": BookingStatus.TRIP_ENDED,
                "price": Decimal("6000"), "deposit": Decimal("1800"),
                "start": now - timedelta(hours=9), "hours": 8,
                "driver": driver_models[1].id,
                "overtime": Decimal("800"),
                "promo": "TAIPEI101",
            },
            {
                "status": BookingStatus.COMPLETED,
                "price": Decimal("3000"), "deposit": Decimal("900"),
                "start": now - timedelta(days=2), "hours": 4,
                "driver": driver_models[0].id,
                "tip": Decimal("200"),
            },
        ]

        booking_models = []
        for i, b in enumerate(bookings_data):
            overtime = b.get("overtime", Decimal("0"))
            m = BookingModel(
                booking_number=_booking_number(offset_ms=i * 1000),
                customer_id=f"customer-{i + 1}",
                driver_id=b["driver"],
                status=b["status"],
                vehicle_type="large",
                scheduled_start_at=b["start"],
                duration_hours=b["hours"],
                base_price=b["price"],
                deposit_amount=b["deposit"],
                balance_amount=b["price"] - b["deposit"],
                overtime_fee_amount=overtime,
                tip_amount=b.get("tip", Decimal("0")),
                total_amount=b["price"] + overtime,
                promo_code=b.get("promo"),
            )
            session.add(m)
            booking_models.append(m)
        await session.flush()
        print(f"  Created {len(booking_models)} bookings")

        # ── Commission snapshots (promo-code booking) ─────────────────
        promo_booking = booking_models[2]
        session.add_all(
            [
                CommissionRecordModel(
                    booking_id=promo_booking.id,
                    tier=CommissionTier.INFLUENCER,
                    influencer_id="influencer-taipei101",
                    promo_code="TAIPEI101",
                    original_price=Decimal("6300"),
                    discount_amount=Decimal("300"),
                    final_price=Decimal("6000"),
                    commission_type=CommissionType.BOTH,
                    commission_rate=Decimal("5"),
                    commission_fixed_amount=Decimal("100"),
                ),
                CommissionRecordModel(
                    booking_id=promo_booking.id,
                    tier=CommissionTier.DRIVER_REFERRAL,
                    influencer_id=driver_models[3].id,
                    original_price=Decimal("6300"),
                    discount_amount=Decimal("300"),
                    final_price=Decimal("6000"),
                    commission_type=CommissionType.PERCENT,
                    commission_rate=Decimal("2"),
                ),
            ]
        )
        await session.flush()
        print("  Created 2 commission records")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
