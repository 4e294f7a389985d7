"""
Автоотклонение просроченных заявок.

Раз в интервал просматривает бронирования в статусе pending и отклоняет те,
чье время начала уже прошло. Отклонение идет через тот же переход
жизненного цикла, что и ручное, от имени системы.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.config import BOOKING_SWEEP_INTERVAL_SECONDS, BOOKING_TIMEZONE
from app.core.database import async_session
from app.core.exceptions import InvalidTransitionError
from app.core.logging_utils import error_tracker, log_business_event
from app.bookings.crud.bookings import get_pending_bookings
from app.bookings.services.booking_service import reject_overdue
from app.bookings.services.lifecycle import BookingSnapshot
from app.bookings.services.schedule import booking_instant, resolve_timezone, utcnow

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "booking-timeout-sweep"


@dataclass
class SweepReport:
    scanned: int = 0
    rejected: int = 0
    # Статус успел измениться (одобрено или отклонено параллельно)
    skipped: int = 0
    failed: int = 0


class BookingTimeoutSweeper:
    """Периодическое отклонение заявок, не одобренных до времени поездки"""

    def __init__(
        self,
        session_factory=async_session,
        interval_seconds: int = BOOKING_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        tz: Union[str, tzinfo, None] = BOOKING_TIMEZONE,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.tz = resolve_timezone(tz)
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def run_once(self) -> SweepReport:
        """
        Один проход. Ошибка по отдельной заявке не прерывает проход,
        она учитывается в failed.
        """
        report = SweepReport()

        async with self.session_factory() as session:
            # Срезы, а не ORM-объекты: rollback после ошибки сбрасывает объекты сессии
            pending = [
                BookingSnapshot.from_booking(b)
                for b in await get_pending_bookings(session)
            ]
            report.scanned = len(pending)

            for booking in pending:
                try:
                    starts_at = booking_instant(booking.date, booking.time, self.tz)
                    now = self.clock()
                    if now <= starts_at:
                        continue
                    await reject_overdue(session, booking, now)
                    report.rejected += 1
                except InvalidTransitionError:
                    report.skipped += 1
                except Exception as e:
                    report.failed += 1
                    logger.error(
                        f"Timeout sweep failed for booking {booking.id}: {str(e)}",
                        exc_info=True,
                    )
                    error_tracker.track_error(
                        "BOOKING_SWEEP_ERROR", str(e), {"booking_id": booking.id}
                    )
                    await session.rollback()

        if report.rejected or report.failed:
            log_business_event("bookings_timeout_sweep", "system", None, asdict(report))
        else:
            logger.debug(f"Timeout sweep: nothing to reject ({report.scanned} pending)")
        return report

    async def _scheduled_run(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            logger.error(f"Timeout sweep aborted: {str(e)}", exc_info=True)
            error_tracker.track_error("BOOKING_SWEEP_ABORTED", str(e))

    def start(self) -> None:
        """Запуск по интервалу; требует работающего event loop"""
        if self.running:
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._scheduled_run,
            "interval",
            seconds=self.interval_seconds,
            id=SWEEP_JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(f"Booking timeout sweeper started, every {self.interval_seconds}s")

    def stop(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Booking timeout sweeper stopped")
        self._scheduler = None
