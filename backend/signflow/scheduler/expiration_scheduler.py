"""Expiration Scheduler - Periodic expiration sweep

Every server may run its own scheduler: the sweep only relies on conditional
updates in MongoDB, so overlapping runs never expire a request twice or send
a duplicate warning.
"""
import os
import socket
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..services.expiration_service import ExpirationService
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.logger import get_logger, set_correlation_id

logger = get_logger(__name__)


class ExpirationScheduler:
    """Runs ExpirationService.check_expirations on an interval using APScheduler"""

    def __init__(self, expiration_service: ExpirationService, interval_minutes: int = 60):
        self.expiration_service = expiration_service
        self.interval_minutes = interval_minutes
        self.scheduler: Optional[BackgroundScheduler] = None
        self._is_running = False
        self._server_id = f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Expiration scheduler already running")
            return

        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="check_expirations",
            name="Expire overdue signature requests",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Expiration scheduler started (every {self.interval_minutes} min) on {self._server_id}"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Expiration scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def run_once(self):
        """One sweep; also used by scripts/run_expiration_sweep.py"""
        set_correlation_id(generate_correlation_id())
        result = self.expiration_service.check_expirations()
        if not result.success:
            logger.error(
                f"Expiration sweep failed: {result.error.message}",
                extra={"operation": "check_expirations", "error_code": result.error.code}
            )
        return result
