"""Driver selection for ``assign_driver``."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from charter.infrastructure.repositories import DriverRepository

logger = logging.getLogger(__name__)


class DispatchSelector:
    """Pick the active driver with the fewest completed trips."""

    async def select(
        self, session: AsyncSession, booking_id: str
    ) -> tuple[Optional[str], bool]:
        driver = await DriverRepository(session).least_busy_active()
        if driver is None:
            logger.warning("No active driver available for booking %s", booking_id)
            return None, False
        logger.info(
            "Selected driver %s (%d trips) for booking %s",
            driver.id,
            driver.completed_trips,
            booking_id,
        )
        return driver.id, True
