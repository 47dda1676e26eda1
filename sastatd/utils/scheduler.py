"""Periodic jobs on the daemon's event loop."""

import asyncio
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .errors import ConfigurationError, InvalidConfigError
from .logging import get_logger, log_call

logger = get_logger(__name__)


def _validate_interval(job_name: str, seconds: int) -> None:
    """Reject non-positive or non-integer intervals."""

    if not isinstance(seconds, int) or seconds <= 0:
        raise InvalidConfigError(
            f"Invalid interval for {job_name}: {seconds} (must be positive integer)"
        )


class HeartbeatScheduler:
    """Runs one coroutine every ``interval`` seconds until stopped."""

    JOB_ID = "heartbeat"

    def __init__(self, job: Callable[[], Awaitable[None]], interval: int):
        _validate_interval(self.JOB_ID, interval)
        self.job = job
        self.interval = interval
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @log_call
    def start(self) -> None:
        """Start the timer; must be called from inside the running loop."""

        if self.running:
            logger.info("Heartbeat is already running")
            return

        try:
            self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
            self._scheduler.add_job(
                self.job,
                "interval",
                seconds=self.interval,
                id=self.JOB_ID,
                coalesce=True,
                max_instances=1,
                replace_existing=True,
            )
            self._scheduler.start()
        except Exception as e:
            raise ConfigurationError(f"Failed to start heartbeat: {str(e)}") from e

        logger.info(f"Heartbeat every {self.interval}s")

    @log_call
    def stop(self) -> None:
        """Cancel the timer and any pending run."""

        if not self.running:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Heartbeat stopped")
