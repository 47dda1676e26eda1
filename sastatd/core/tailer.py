"""Follow an append-only log file across rotation and truncation.

The tailer is polled from the daemon's event loop. Each poll reads every
byte appended since the last one, splits it into complete lines and
returns them as ``LineEvent`` objects. A trailing partial line stays in
the buffer until its newline arrives.

Rolls
-----
- rotated: the path now names a different file (device/inode changed).
  Whatever is still readable from the old handle is delivered first,
  then the new file is read from offset 0.
- truncated: same file, but its size dropped below our offset or its
  first HEAD_BYTES changed (rewritten in place). The buffered partial
  line is discarded and reading restarts at 0.

Both emit a ``RollEvent`` between the old and the new lines.

If the path disappears the tailer keeps polling; once it has been gone
for ``reopen_timeout`` seconds the tailer enters ``TailState.ERROR`` and
raises ``TailError``.
"""

import asyncio
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import aiofiles
import aiofiles.os

from sastatd.utils.errors import TailError
from sastatd.utils.logging import get_logger, log_event

logger = get_logger(__name__)

HEAD_BYTES = 128


class TailState(Enum):
    """Tailer lifecycle states."""

    OPENING = "opening"
    FOLLOWING = "following"
    ERROR = "error"


@dataclass
class TailPosition:
    """Identity of the followed file and the byte offset consumed so far."""

    identity: Optional[Tuple[int, int]] = None  # (st_dev, st_ino)
    offset: int = 0
    head: bytes = b""  # first HEAD_BYTES of the file, to spot in-place rewrites


@dataclass(frozen=True)
class LineEvent:
    line: str


@dataclass(frozen=True)
class RollEvent:
    reason: str  # "rotated" or "truncated"


TailEvent = Union[LineEvent, RollEvent]


class LogTailer:
    """Poll-driven follower for a single log file."""

    def __init__(
        self,
        path: Path,
        *,
        start_at_end: bool = True,
        poll_interval: float = 1.0,
        reopen_timeout: float = 60.0,
        max_read_bytes: int = 1_048_576,
        encoding: str = "utf-8",
    ):
        self.path = Path(path)
        self.start_at_end = start_at_end
        self.poll_interval = poll_interval
        self.reopen_timeout = reopen_timeout
        self.max_read_bytes = max_read_bytes
        self.encoding = encoding

        self.state = TailState.OPENING
        self.position = TailPosition()
        self._fh = None
        self._buffer = b""
        self._missing_since: Optional[float] = None
        self.backlog = False

    async def open(self) -> None:
        """OPENING -> FOLLOWING; a missing or unreadable file is fatal."""

        try:
            await self._attach()
        except OSError as e:
            self._fail(f"Cannot open log file {self.path}: {e}", e)

        if self.start_at_end:
            self.position.offset = os.fstat(self._fh.fileno()).st_size
            self.position.head = await self._read_head()

        self.state = TailState.FOLLOWING
        logger.info(f"Following {self.path} from offset {self.position.offset}")

    async def close(self) -> None:
        if self._fh is not None:
            await self._fh.close()
            self._fh = None

    async def poll(self) -> List[TailEvent]:
        """Read everything appended since the previous poll."""

        if self.state is TailState.ERROR:
            raise TailError(f"Tailer for {self.path} is in error state")
        if self.state is TailState.OPENING:
            await self.open()

        events: List[TailEvent] = []

        try:
            info = await aiofiles.os.stat(self.path)
        except OSError as e:
            events.extend(await self._drain_all())
            self._note_missing(e)
            return events

        if self._missing_since is not None:
            logger.info(f"{self.path} is back")
            self._missing_since = None

        identity = (info.st_dev, info.st_ino)

        if identity != self.position.identity:
            events.extend(await self._drain_all())
            if self._buffer:
                logger.debug(f"Dropping {len(self._buffer)} unterminated bytes from rotated file")
            try:
                await self._attach()
            except OSError as e:
                self._note_missing(e)
                return events
            events.append(self._roll("rotated"))

        elif info.st_size < self.position.offset or await self._rewritten():
            self._buffer = b""
            self.position.offset = 0
            self.position.head = b""
            events.append(self._roll("truncated"))

        events.extend(await self._drain())

        if len(self.position.head) < HEAD_BYTES:
            self.position.head = await self._read_head()

        return events

    async def follow(self, handler: Callable[[TailEvent], None]) -> None:
        """Poll forever, passing each event to ``handler`` in file order."""

        if self.state is TailState.OPENING:
            await self.open()

        try:
            while True:
                for event in await self.poll():
                    handler(event)
                # A capped read means more is waiting: poll again without the delay.
                await asyncio.sleep(0 if self.backlog else self.poll_interval)
        finally:
            await self.close()

    async def _attach(self) -> None:
        """Open the path afresh and reset the position to its start."""

        handle = await aiofiles.open(self.path, "rb")
        info = os.fstat(handle.fileno())

        await self.close()
        self._fh = handle
        self._buffer = b""
        self.position = TailPosition(identity=(info.st_dev, info.st_ino), offset=0)

    async def _drain(self) -> List[TailEvent]:
        """Read from the current offset and split off complete lines."""

        if self._fh is None:
            return []

        read = 0
        try:
            await self._fh.seek(self.position.offset)
            while read < self.max_read_bytes:
                chunk = await self._fh.read(self.max_read_bytes - read)
                if not chunk:
                    break
                read += len(chunk)
                self._buffer += chunk
        except OSError as e:
            self._fail(f"Read error on {self.path}: {e}", e)

        self.position.offset += read
        self.backlog = read >= self.max_read_bytes

        *complete, self._buffer = self._buffer.split(b"\n")
        return [
            LineEvent(raw.rstrip(b"\r").decode(self.encoding, errors="replace"))
            for raw in complete
        ]

    async def _drain_all(self) -> List[TailEvent]:
        """Drain until the current handle has nothing left to give."""

        events = await self._drain()
        while self.backlog:
            events.extend(await self._drain())
        return events

    async def _read_head(self) -> bytes:
        try:
            await self._fh.seek(0)
            return await self._fh.read(HEAD_BYTES)
        except OSError as e:
            self._fail(f"Read error on {self.path}: {e}", e)

    async def _rewritten(self) -> bool:
        """True when the start of the file no longer matches what was read there."""

        head = self.position.head
        if not head:
            return False

        try:
            await self._fh.seek(0)
            current = await self._fh.read(len(head))
        except OSError as e:
            self._fail(f"Read error on {self.path}: {e}", e)

        return current != head

    def _roll(self, reason: str) -> RollEvent:
        logger.info(f"Log {self.path} {reason}, reading from offset 0")
        log_event("log_rolled", f"Log file {reason}", path=str(self.path), reason=reason)
        return RollEvent(reason)

    def _note_missing(self, error: OSError) -> None:
        now = time.monotonic()

        if self._missing_since is None:
            self._missing_since = now
            logger.warning(f"Log file {self.path} unavailable: {error}")
            return

        if now - self._missing_since > self.reopen_timeout:
            self._fail(
                f"Log file {self.path} unavailable for more than {self.reopen_timeout}s",
                error,
            )

    def _fail(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.state = TailState.ERROR
        raise TailError(message, details={"path": str(self.path)}) from cause
