"""
Hold expiry sweeper.

Soft-holds reserve a slot for HOLD_WINDOW_MINUTES while the client pays or
confirms. Nothing else releases them, so a background task periodically
cancels every hold past its expiry and makes the slot bookable again.

Each booking expires in its own transaction: one bad row must not block
the rest of the batch, and a hold the client confirms at the same moment
simply loses the compare-and-swap (logged, not an error).

Runs inside the API process (started from the FastAPI lifespan hook) or
standalone:

    python -m booking_engine.services.sweeper
"""

import asyncio
from datetime import datetime
from typing import Optional

from booking_engine.core.clock import utcnow
from booking_engine.core.config import get_settings
from booking_engine.core.errors import InvalidTransition
from booking_engine.core.logging import booking_log_context, get_logger, setup_logging
from booking_engine.core.metrics import record_sweeper_run
from booking_engine.db.session import AsyncSessionLocal
from booking_engine.services import booking_service
from booking_engine.services.cache_service import invalidate_trainer_slots
from booking_engine.services.interfaces.notifier import BookingNotification
from booking_engine.services.notification_service import dispatch_safely

logger = get_logger(__name__)
settings = get_settings()


class HoldExpirySweeper:
    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.interval = interval if interval is not None else settings.SWEEPER_INTERVAL_SECONDS
        self.batch_size = batch_size if batch_size is not None else settings.SWEEPER_BATCH_SIZE
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """Expire one batch of stale holds. Returns how many were released."""
        now = now or utcnow()

        try:
            async with self.session_factory() as session:
                expired_ids = await booking_service.find_expired_holds(session, now, self.batch_size)
        except Exception as e:
            logger.error("sweeper_scan_failed", error=str(e))
            record_sweeper_run(ok=False)
            return 0

        expired = 0
        errors = 0
        for booking_id in expired_ids:
            with booking_log_context(booking_id=booking_id):
                try:
                    async with self.session_factory() as session:
                        try:
                            booking = await booking_service.expire_hold(session, booking_id, now)
                            await session.commit()
                        except Exception:
                            await session.rollback()
                            raise
                except InvalidTransition as e:
                    # Confirmed, cancelled or already expired since the scan
                    logger.debug("sweeper_hold_skipped", reason=e.context.get("reason"))
                    continue
                except Exception as e:
                    errors += 1
                    logger.error("sweeper_expire_failed", error=str(e))
                    continue

                expired += 1
                await invalidate_trainer_slots(booking.trainer_id)
                await dispatch_safely(BookingNotification.from_booking("cancelled", booking))

        record_sweeper_run(ok=True, expired=expired, errors=errors)
        if expired_ids:
            logger.info(
                "sweeper_run_completed",
                scanned=len(expired_ids),
                expired=expired,
                errors=errors,
            )
        return expired

    async def _loop(self) -> None:
        logger.info("sweeper_started", interval=self.interval, batch_size=self.batch_size)
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:
                # Retried on the next tick
                logger.exception("sweeper_run_failed")
                record_sweeper_run(ok=False)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("sweeper_stopped")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None


async def _main() -> None:
    setup_logging()
    sweeper = HoldExpirySweeper()
    sweeper.start()
    try:
        await asyncio.Event().wait()
    finally:
        await sweeper.stop()


if __name__ == "__main__":
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass
