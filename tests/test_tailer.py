"""
Tests for the log tailer

Tests cover:
- Start position (end of file or replay)
- Partial lines and CRLF endings
- Truncation and rename rotation
- Missing files at open and while following
"""
import asyncio
import os

import pytest

from conftest import append_lines, wait_for

from sastatd.core.tailer import LineEvent, LogTailer, RollEvent, TailState
from sastatd.utils.errors import TailError


def lines_of(events):
    return [event.line for event in events if isinstance(event, LineEvent)]


@pytest.fixture
async def tailer(log_file):
    """Tailer opened at the end of an empty log"""
    tailer = LogTailer(log_file, poll_interval=0.01, reopen_timeout=0.05)
    await tailer.open()
    yield tailer
    await tailer.close()


class TestOpen:
    """Tests for the starting position"""

    @pytest.mark.asyncio
    async def test_starts_at_end(self, log_file):
        """Test existing content is skipped by default"""
        append_lines(log_file, "old line")
        tailer = LogTailer(log_file)
        await tailer.open()

        try:
            assert tailer.state is TailState.FOLLOWING
            assert await tailer.poll() == []

            append_lines(log_file, "new line")
            assert lines_of(await tailer.poll()) == ["new line"]
        finally:
            await tailer.close()

    @pytest.mark.asyncio
    async def test_replay_reads_from_start(self, log_file):
        """Test start_at_end=False delivers existing content"""
        append_lines(log_file, "first", "second")
        tailer = LogTailer(log_file, start_at_end=False)
        await tailer.open()

        try:
            assert lines_of(await tailer.poll()) == ["first", "second"]
        finally:
            await tailer.close()

    @pytest.mark.asyncio
    async def test_missing_file_is_fatal(self, tmp_path):
        """Test opening a non-existent path raises TailError"""
        tailer = LogTailer(tmp_path / "absent.log")

        with pytest.raises(TailError):
            await tailer.open()

        assert tailer.state is TailState.ERROR
        with pytest.raises(TailError):
            await tailer.poll()


class TestLines:
    """Tests for line splitting"""

    @pytest.mark.asyncio
    async def test_partial_line_is_held(self, tailer, log_file):
        """Test an unterminated line waits for its newline"""
        with open(log_file, "a") as f:
            f.write("spamd partial")

        assert await tailer.poll() == []

        with open(log_file, "a") as f:
            f.write(" complete\nnext")

        assert lines_of(await tailer.poll()) == ["spamd partial complete"]
        assert tailer.position.offset == os.path.getsize(log_file)

    @pytest.mark.asyncio
    async def test_crlf_is_stripped(self, tailer, log_file):
        """Test carriage returns are removed from line ends"""
        with open(log_file, "ab") as f:
            f.write(b"windows line\r\n")

        assert lines_of(await tailer.poll()) == ["windows line"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self, tailer, log_file):
        """Test undecodable bytes do not stop the tailer"""
        with open(log_file, "ab") as f:
            f.write(b"bad \xff byte\n")

        assert lines_of(await tailer.poll()) == ["bad \ufffd byte"]


class TestRolls:
    """Tests for truncation and rotation"""

    @pytest.mark.asyncio
    async def test_truncation(self, tailer, log_file):
        """Test a shrunken file is re-read from offset 0"""
        append_lines(log_file, "one", "two", "three")
        await tailer.poll()

        log_file.write_text("")
        append_lines(log_file, "x")
        events = await tailer.poll()

        assert events == [RollEvent("truncated"), LineEvent("x")]

    @pytest.mark.asyncio
    async def test_rename_rotation(self, tailer, log_file):
        """Test old lines, then a roll, then the new file's lines"""
        append_lines(log_file, "before")
        await tailer.poll()

        append_lines(log_file, "late old")
        os.rename(log_file, log_file.with_name("mail.log.1"))
        append_lines(log_file, "fresh")

        events = await tailer.poll()

        assert events == [LineEvent("late old"), RollEvent("rotated"), LineEvent("fresh")]
        assert tailer.position.identity == (
            os.stat(log_file).st_dev,
            os.stat(log_file).st_ino,
        )

    @pytest.mark.asyncio
    async def test_rewrite_past_offset(self, tailer, log_file):
        """Test an in-place rewrite longer than the old content is a roll"""
        append_lines(log_file, "one", "two", "three")
        assert lines_of(await tailer.poll()) == ["one", "two", "three"]

        log_file.write_text("rewritten 1\nrewritten 2\nrewritten 3\n")
        events = await tailer.poll()

        assert events == [
            RollEvent("truncated"),
            LineEvent("rewritten 1"),
            LineEvent("rewritten 2"),
            LineEvent("rewritten 3"),
        ]

    @pytest.mark.asyncio
    async def test_appends_are_not_rolls(self, tailer, log_file):
        """Test plain growth never looks like a rewrite"""
        for n in range(5):
            append_lines(log_file, f"line-{n:03d}" * 20)
            events = await tailer.poll()
            assert events == [LineEvent(f"line-{n:03d}" * 20)]

    @pytest.mark.asyncio
    async def test_rotation_delivers_whole_backlog(self, log_file):
        """Test every unread old-file line arrives before the roll"""
        old = [f"old-{n:03d}" for n in range(10)]
        append_lines(log_file, *old)
        tailer = LogTailer(log_file, start_at_end=False, max_read_bytes=16)
        await tailer.open()

        try:
            os.rename(log_file, log_file.with_name("mail.log.1"))
            append_lines(log_file, "new-000")

            events = await tailer.poll()
            while tailer.backlog:
                events.extend(await tailer.poll())

            assert events == [LineEvent(line) for line in old] + [
                RollEvent("rotated"),
                LineEvent("new-000"),
            ]
        finally:
            await tailer.close()

    @pytest.mark.asyncio
    async def test_missing_then_recreated(self, tailer, log_file):
        """Test a briefly missing file is picked up again"""
        os.rename(log_file, log_file.with_name("mail.log.1"))
        assert await tailer.poll() == []

        append_lines(log_file, "back")
        events = await tailer.poll()

        assert events == [RollEvent("rotated"), LineEvent("back")]
        assert tailer.state is TailState.FOLLOWING

    @pytest.mark.asyncio
    async def test_missing_past_timeout(self, tailer, log_file):
        """Test a file gone longer than reopen_timeout is fatal"""
        log_file.unlink()
        assert await tailer.poll() == []

        await asyncio.sleep(0.1)

        with pytest.raises(TailError):
            await tailer.poll()
        assert tailer.state is TailState.ERROR


@pytest.mark.asyncio
async def test_follow_delivers_and_cancels(tailer, log_file):
    """Test follow feeds the handler until cancelled"""
    seen = []
    task = asyncio.create_task(tailer.follow(seen.append))

    append_lines(log_file, "a", "b")
    await wait_for(lambda: len(seen) == 2)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert lines_of(seen) == ["a", "b"]
    assert tailer._fh is None


@pytest.mark.asyncio
async def test_follow_reads_backlog_without_waiting(log_file):
    """Test capped reads are followed up at once, not after poll_interval"""
    lines = [f"line-{n:03d}" for n in range(10)]
    append_lines(log_file, *lines)
    tailer = LogTailer(log_file, start_at_end=False, poll_interval=30.0, max_read_bytes=16)

    seen = []
    task = asyncio.create_task(tailer.follow(seen.append))

    try:
        await wait_for(lambda: len(seen) == 10, timeout=2.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    assert lines_of(seen) == lines
