"""TCP command server over the shared statistics store.

Each accepted socket becomes a ``ClientConnection`` served by its own
task on the daemon's event loop. Commands on one connection are handled
strictly in order; all connections read and mutate the same store.
"""

import asyncio
import itertools
from typing import Awaitable, Callable, Dict, List, Optional

from sastatd.core.stats import StatStore
from sastatd.utils.config import ListenConfig
from sastatd.utils.errors import ListenError
from sastatd.utils.logging import get_logger, log_event

from .protocol import ERROR_REPLY, Command, encode_reply, format_brief, format_stats

logger = get_logger(__name__)

MAX_LINE_BYTES = 64 * 1024

Checkpoint = Callable[[str], Awaitable[bool]]


class ClientConnection:
    """One accepted socket and its output stream."""

    _ids = itertools.count(1)

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.id = next(self._ids)
        self.reader = reader
        self.writer = writer

        peer = writer.get_extra_info("peername")
        self.peer = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else str(peer)
        self.logger = get_logger(__name__, client=self.id, peer=self.peer)

    async def send(self, lines: List[str]) -> None:
        """Write reply lines and flush them straight away."""

        if not lines:
            return

        self.writer.write(encode_reply(lines))
        await self.writer.drain()

    async def close(self) -> None:
        if self.writer.is_closing():
            return

        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            self.logger.debug(f"Error while closing: {e}")


class CommandServer:
    """Accepts clients and answers brief/stats/dump/reset/quit."""

    def __init__(self, store: StatStore, listen: ListenConfig, checkpoint: Checkpoint):
        """Initialise the server.

        Args:
            store: Statistics shared with the log follower
            listen: Address to bind
            checkpoint: Coroutine saving the store, called after reset and
                dump with the triggering command's name
        """
        self.store = store
        self.listen = listen
        self._checkpoint = checkpoint
        self._server: Optional[asyncio.AbstractServer] = None
        self._closing = False
        self.clients: Dict[int, ClientConnection] = {}

        self._handlers: Dict[Command, Callable[[], Awaitable[List[str]]]] = {
            Command.BRIEF: self._brief,
            Command.STATS: self._stats,
            Command.DUMP: self._dump,
            Command.RESET: self._reset,
            Command.UNKNOWN: self._unknown,
        }

    @property
    def port(self) -> Optional[int]:
        """Bound port (useful when configured with port 0)."""

        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                host=self.listen.host,
                port=self.listen.port,
                limit=MAX_LINE_BYTES,
                reuse_address=True,
            )
        except OSError as e:
            raise ListenError(
                f"Cannot listen on {self.listen}: {e}", details={"listen": str(self.listen)}
            ) from e

        logger.info(f"Listening on {self.listen} (port {self.port})")
        log_event("server_started", "Command server listening", listen=str(self.listen))

    async def close(self) -> None:
        """Stop accepting and drop every open connection."""

        self._closing = True

        if self._server is not None:
            self._server.close()

        for client in list(self.clients.values()):
            await client.close()

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        logger.info("Command server closed")

    async def dispatch(self, command: Command) -> List[str]:
        """Run one command against the store and return its reply lines."""
        return await self._handlers[command]()

    ## Client Handler

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        client = ClientConnection(reader, writer)

        if self._closing:
            await client.close()
            return

        self.clients[client.id] = client
        client.logger.debug("Client connected")

        try:
            while True:
                try:
                    raw = await reader.readline()
                except ValueError:
                    client.logger.warning(f"Line longer than {MAX_LINE_BYTES} bytes, disconnecting")
                    break

                if not raw.endswith(b"\n"):
                    break

                command = Command.parse(raw.decode("utf-8", errors="replace"))
                if command is Command.QUIT:
                    break

                client.logger.debug(f"Command {command.value}")
                await client.send(await self.dispatch(command))

        except ConnectionError as e:
            client.logger.debug(f"Connection lost: {e}")

        finally:
            self.clients.pop(client.id, None)
            await client.close()
            client.logger.debug("Client disconnected")

    ## Command Handlers

    async def _brief(self) -> List[str]:
        return format_brief(self.store)

    async def _stats(self) -> List[str]:
        return format_stats(self.store)

    async def _dump(self) -> List[str]:
        lines = format_stats(self.store)
        self.store.reset()
        await self._checkpoint("dump")
        return lines

    async def _reset(self) -> List[str]:
        self.store.reset()
        await self._checkpoint("reset")
        return []

    async def _unknown(self) -> List[str]:
        return [ERROR_REPLY]
