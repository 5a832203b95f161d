"""
Reminder job: nudges subscribed contacts who have gone quiet.

Runs on a fixed tick aligned to wall-clock multiples of the interval. Each
tick asks the store for the "working set" (contacts who usually post around
this time on this kind of day, plus anyone silent for a week) and reminds the
subscribed members of that set who have not posted or been reminded within
one interval.
"""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import DayType
from whatsup.repositories.status_repository import (
    STALE_DAYS,
    WORKING_SET_TOLERANCE_SECONDS,
    WORKING_SET_TRAILING_DAYS,
)
from whatsup.services import replies
from whatsup.services.context import ServiceContext

logger = get_logger(__name__)


class ReminderMetrics:
    """Counters for a single tick."""

    def __init__(self, tick_at: datetime, day_type: DayType):
        self.tick_at = tick_at
        self.day_type = day_type
        self.contacts_considered = 0
        self.working_set_size = 0
        self.reminders_sent = 0
        self.rate_limited = 0
        self.not_in_working_set = 0
        self.degraded_queries: list[str] = []

    def to_dict(self) -> dict:
        return {
            "job_run": "reminder",
            "tick_at": self.tick_at.isoformat(),
            "day_type": self.day_type.value,
            "contacts_considered": self.contacts_considered,
            "working_set_size": self.working_set_size,
            "reminders_sent": self.reminders_sent,
            "rate_limited": self.rate_limited,
            "not_in_working_set": self.not_in_working_set,
            "degraded_queries": list(self.degraded_queries),
        }


def next_aligned_tick(now: datetime, interval: timedelta) -> datetime:
    """The next wall-clock multiple of ``interval`` strictly after ``now``."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = now - midnight
    ticks = elapsed // interval + 1
    return midnight + ticks * interval


class ReminderJob:
    def __init__(self, context: ServiceContext):
        self.context = context
        settings = context.settings
        self.interval = timedelta(minutes=settings.REMINDER_INTERVAL_MINUTES)
        self.timezone = ZoneInfo(settings.REMINDER_TIMEZONE)
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_metrics: dict | None = None

    async def _working_set(self, now: datetime, day_type: DayType, metrics: ReminderMetrics) -> set[str]:
        store = self.context.store
        working: set[str] = set()

        try:
            working |= await store.query_working_set(
                now,
                day_type,
                trailing_days=WORKING_SET_TRAILING_DAYS,
                tolerance_seconds=WORKING_SET_TOLERANCE_SECONDS,
                timezone=self.context.settings.REMINDER_TIMEZONE,
            )
        except Exception as e:
            logger.warning("Working set query failed, treating as empty", error=str(e))
            metrics.degraded_queries.append("working_set")

        try:
            working |= await store.query_stale_set(now, stale_days=STALE_DAYS)
        except Exception as e:
            logger.warning("Stale set query failed, treating as empty", error=str(e))
            metrics.degraded_queries.append("stale_set")

        return working

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run a single tick.

        Returns:
            Dict: tick metrics
        """
        if self.is_running:
            logger.warning("Reminder job already running, skipping this tick")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            now = (now or self.context.now()).astimezone(self.timezone)
            day_type = DayType.of(now)
            metrics = ReminderMetrics(now, day_type)

            working = await self._working_set(now, day_type, metrics)
            metrics.working_set_size = len(working)

            channel = self.context.require_channel()
            directory = self.context.directory

            for contact in directory.subscribed():
                metrics.contacts_considered += 1

                if now - contact.quiet_since < self.interval:
                    metrics.rate_limited += 1
                    continue
                if contact.jid not in working:
                    metrics.not_in_working_set += 1
                    continue

                channel.send_message(contact.jid, replies.REMINDER_TEXT)
                directory.record_reminder(contact.jid, now)
                metrics.reminders_sent += 1
                logger.debug("Reminder sent", jid=contact.jid)

            self.last_run_time = now
            self.last_metrics = metrics.to_dict()
            logger.info("Reminder tick completed", **self.last_metrics)
            return self.last_metrics

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "reminder",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": int(self.interval.total_seconds() // 60),
            "last_run_metrics": self.last_metrics,
        }


async def start_reminder_scheduler(job: ReminderJob) -> None:
    """
    Tick forever on wall-clock boundaries.

    Started from the application lifespan once the presence channel is
    connected:
        asyncio.create_task(start_reminder_scheduler(ReminderJob(context)))
    """
    logger.info(
        "Reminder scheduler started",
        interval_minutes=int(job.interval.total_seconds() // 60),
        timezone=str(job.timezone),
    )

    while True:
        try:
            now = job.context.now().astimezone(job.timezone)
            next_run = next_aligned_tick(now, job.interval)
            sleep_seconds = (next_run - now).total_seconds()

            logger.debug("Reminder tick scheduled", next_run=next_run.isoformat(), sleep_seconds=sleep_seconds)
            await asyncio.sleep(sleep_seconds)

            if not job.context.session_ready:
                logger.info("Presence session not ready, skipping reminder tick")
                continue

            await job.run_once()

        except asyncio.CancelledError:
            logger.info("Reminder scheduler cancelled")
            break
        except Exception as e:
            logger.error("Error in reminder scheduler", error=str(e), error_type=type(e).__name__)
