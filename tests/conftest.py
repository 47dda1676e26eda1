"""
Shared test fixtures and configuration for pytest
"""
import asyncio
from pathlib import Path

import pytest

from sastatd.core.stats import Outcome, StatStore
from sastatd.utils.config import DaemonConfig, ListenConfig


SPAMD_PREFIX = "Oct 18 10:30:00 mx1 spamd[4242]: spamd:"


def make_report(user: str, outcome: Outcome, score: float, threshold: float = 5.0) -> str:
    """Build a spamd result line as it appears in the mail log"""
    verdict = "clean message" if outcome is Outcome.CLEAN else "identified spam"
    return (
        f"{SPAMD_PREFIX} {verdict} ({score:.1f}/{threshold:.1f}) "
        f"for {user}:1001 in 0.4 seconds, 2311 bytes."
    )


def append_lines(path: Path, *lines: str) -> None:
    """Append complete lines to a log file"""
    with open(path, "a", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


async def wait_for(predicate, timeout: float = 5.0, step: float = 0.02) -> None:
    """Poll ``predicate`` until it is true or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(step)


async def send_commands(port: int, *commands: str) -> list:
    """Send commands followed by quit and return every reply line"""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        payload = "".join(f"{command}\n" for command in commands) + "quit\n"
        writer.write(payload.encode("utf-8"))
        await writer.drain()
        data = await asyncio.wait_for(reader.read(), timeout=5.0)
    finally:
        writer.close()
        await writer.wait_closed()
    return data.decode("utf-8").splitlines()


@pytest.fixture
def store():
    """Empty statistics store"""
    return StatStore()


@pytest.fixture
def populated_store():
    """Store with two users and a mix of verdicts"""
    store = StatStore()
    store.record("alice@example.com", Outcome.CLEAN, 2.0)
    store.record("alice@example.com", Outcome.SPAM, 9.0)
    store.record("bob@example.com", Outcome.CLEAN, -1.5)
    store.record("bob@example.com", Outcome.CLEAN, 0.5)
    store.record("bob@example.com", Outcome.SPAM, 12.3)
    return store


@pytest.fixture
def snapshot_path(tmp_path):
    """Location for a snapshot file that does not exist yet"""
    return tmp_path / "state" / "sastatd.db"


@pytest.fixture
def log_file(tmp_path):
    """Empty mail log"""
    path = tmp_path / "mail.log"
    path.touch()
    return path


@pytest.fixture
def daemon_config(log_file, snapshot_path, tmp_path):
    """Daemon configuration bound to an ephemeral loopback port"""
    return DaemonConfig(
        logfile=log_file,
        database=snapshot_path,
        listen=ListenConfig(host="127.0.0.1", port=0),
        interval=60,
        poll_interval=0.02,
        reopen_timeout=1.0,
        pidfile=tmp_path / "sastatd.pid",
        debug=True,
    )
