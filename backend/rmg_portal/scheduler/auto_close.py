"""Auto-Close Scheduler - Closes tickets left in Resolved for too long"""
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..services.ticket_service import TicketService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class AutoCloseScheduler:
    """
    APScheduler job that auto-closes stale resolved tickets

    Each run goes through the ticket state machine as the system actor,
    so auto-closed tickets get the same history entry and notification as
    any other transition.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=settings.auto_close_interval_minutes),
            id="auto_close_resolved_tickets",
            name="Auto-close resolved tickets",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            "Auto-close scheduler started",
            extra={"action": "scheduler_started"}
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Auto-close scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def run_once(self) -> int:
        """Close every stale resolved ticket. Returns how many were closed."""
        set_correlation_id(generate_correlation_id())
        try:
            closed = TicketService().auto_close_stale()
        except Exception as e:
            # A failed run is retried on the next interval
            logger.error(f"Auto-close run failed: {e}", exc_info=True)
            return 0
        return len(closed)


_scheduler: Optional[AutoCloseScheduler] = None


def get_scheduler() -> AutoCloseScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutoCloseScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
