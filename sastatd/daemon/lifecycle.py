"""Daemon lifecycle: startup, event dispatch, heartbeat and shutdown.

Provides the StatsDaemon class which owns every moving part:
- StatStore shared by the log follower and the command server
- PersistenceManager loading the snapshot once and saving it on demand
- LogTailer feeding parsed classification reports into the store
- CommandServer answering clients on the statistics port
- HeartbeatScheduler saving the store every ``interval`` seconds

Everything runs on one asyncio loop, so no handler ever observes a
half-updated store.

Shutdown
--------
SIGHUP, SIGINT and SIGTERM, a failing log follower and a failing
listener all end in ``shutdown()``. It stops the heartbeat, the follower
and the server, then writes one final snapshot. The final save is
skipped when startup never loaded the snapshot, so an unreadable file
is left for the operator.

Usage Examples
--------------

Run until a termination signal arrives:
    >>> config = DaemonConfig(logfile="/var/log/mail.log")
    >>> exit_code = await run_daemon(config)
"""

import asyncio
import signal
import time
from typing import Optional

from sastatd.core.parser import parse_line
from sastatd.core.persistence import PersistenceManager
from sastatd.core.stats import StatStore
from sastatd.core.tailer import LineEvent, LogTailer, RollEvent, TailEvent
from sastatd.utils.config import DaemonConfig
from sastatd.utils.errors import ErrorHandler, PersistenceError, SastatdError
from sastatd.utils.logging import get_logger, log_event
from sastatd.utils.scheduler import HeartbeatScheduler

from .server import CommandServer

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGHUP, signal.SIGINT, signal.SIGTERM)


class StatsDaemon:
    """Single-loop daemon tying the tailer, store, server and snapshot together."""

    def __init__(self, config: DaemonConfig):
        self.config = config

        self.store = StatStore()
        self.persistence = PersistenceManager(config.database)
        self.tailer = LogTailer(
            config.logfile,
            start_at_end=not config.replay,
            poll_interval=config.poll_interval,
            reopen_timeout=config.reopen_timeout,
        )
        self.server = CommandServer(self.store, config.listen, self.checkpoint)
        self.heartbeat = HeartbeatScheduler(self._on_heartbeat, config.interval)

        self.exit_code = 0
        self._loaded = False
        self._shutting_down = False
        self._stop_requested: Optional[asyncio.Event] = None
        self._tail_task: Optional[asyncio.Task] = None

        self._start_time = time.time()
        self.lines_read = 0
        self.events_recorded = 0
        self.rolls = 0

    ## Event Handlers

    def handle_tail_event(self, event: TailEvent) -> None:
        """Fold one tailer event into the store."""

        if isinstance(event, RollEvent):
            self.rolls += 1
            return

        if isinstance(event, LineEvent):
            self.lines_read += 1
            parsed = parse_line(event.line)
            if parsed is None:
                return

            self.store.record(parsed.user, parsed.outcome, parsed.score)
            self.events_recorded += 1

    async def checkpoint(self, reason: str) -> bool:
        """Save the store; failures are logged and left for the next heartbeat."""

        try:
            await self.persistence.save(self.store)
            return True

        except PersistenceError as e:
            logger.warning(f"Snapshot save ({reason}) failed: {e.message}")
            return False

    async def _on_heartbeat(self) -> None:
        logger.debug(
            f"Heartbeat: {len(self.store)} users, {self.lines_read} lines, "
            f"{self.events_recorded} events, {self.rolls} rolls"
        )
        await self.checkpoint("heartbeat")

    def _on_tail_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            ErrorHandler.handle(error, "Log follower stopped")
            self.request_shutdown("log follower failed", exit_code=1)

    ## Startup

    async def start(self) -> None:
        """Load the snapshot, open the log, bind the port, start the heartbeat."""

        loaded = await self.persistence.load()
        self.store.replace(loaded.snapshot())
        self._loaded = True

        await self.tailer.open()
        await self.server.start()
        self.heartbeat.start()

        self._tail_task = asyncio.create_task(
            self.tailer.follow(self.handle_tail_event), name="log-follower"
        )
        self._tail_task.add_done_callback(self._on_tail_done)

        logger.info(f"Daemon started, watching {self.config.logfile}")
        log_event(
            "daemon_started",
            "Daemon started",
            logfile=str(self.config.logfile),
            database=str(self.config.database),
            listen=str(self.config.listen),
            interval=self.config.interval,
        )

    def request_shutdown(self, reason: str, exit_code: int = 0) -> None:
        """Ask the running loop to shut down; safe to call repeatedly."""

        self.exit_code = max(self.exit_code, exit_code)
        logger.info(f"Shutdown requested: {reason}")

        if self._stop_requested is not None:
            self._stop_requested.set()

    async def run(self) -> int:
        """Run until a signal or fatal error; returns the process exit status."""

        self._stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()

        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown, f"signal {sig.name}")

        try:
            await self.start()
            await self._stop_requested.wait()

        except SastatdError as e:
            ErrorHandler.handle(e, "Daemon startup failed")
            self.exit_code = 1

        finally:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)
            await self.shutdown()

        return self.exit_code

    ## Cleanup and Shutdown

    async def shutdown(self) -> None:
        """Quiesce every event source, then write the final snapshot."""

        if self._shutting_down:
            logger.warning("Shutdown already in progress")
            return

        self._shutting_down = True
        logger.info("Shutting down daemon...")

        self.heartbeat.stop()

        if self._tail_task is not None:
            self._tail_task.cancel()
            await asyncio.gather(self._tail_task, return_exceptions=True)
        else:
            await self.tailer.close()

        await self.server.close()

        if self._loaded:
            await self.checkpoint("shutdown")
        else:
            logger.warning("Snapshot was never loaded, skipping final save")

        logger.info("Daemon shutdown complete")
        log_event(
            "daemon_shutdown",
            "Daemon stopped",
            exit_code=self.exit_code,
            uptime=time.time() - self._start_time,
        )


async def run_daemon(config: DaemonConfig) -> int:
    """Main daemon entry point."""

    daemon = StatsDaemon(config)
    return await daemon.run()
