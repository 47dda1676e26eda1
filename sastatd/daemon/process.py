"""Process plumbing for running detached: pid lock, double fork, setuid."""

import fcntl
import grp
import os
import pwd
import sys
from pathlib import Path
from typing import Optional

from sastatd.utils.errors import AlreadyRunningError, PrivilegeError, ProcessError
from sastatd.utils.logging import get_logger

logger = get_logger(__name__)


class PidFile:
    """Single-instance guard backed by an exclusive ``flock`` on the pid file.

    The lock lives on the open file description, so it survives the forks
    in ``daemonize`` and is released when the last holder exits.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fd: Optional[int] = None

    def __enter__(self) -> "PidFile":
        self.acquire()
        self.write_pid()
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> bool:
        self.release()
        return False

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self.locked:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise ProcessError(
                f"Cannot open pid file {self.path}: {e}", details={"path": str(self.path)}
            ) from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            holder = os.read(fd, 32).decode("ascii", errors="replace").strip()
            os.close(fd)
            raise AlreadyRunningError(
                f"Another instance is running (pid {holder or 'unknown'})",
                details={"path": str(self.path), "holder": holder},
            ) from e

        self._fd = fd
        logger.debug(f"Locked pid file {self.path}")

    def write_pid(self) -> None:
        if not self.locked:
            raise ProcessError("Pid file is not locked")

        os.ftruncate(self._fd, 0)
        os.lseek(self._fd, 0, os.SEEK_SET)
        os.write(self._fd, f"{os.getpid()}\n".encode("ascii"))
        os.fsync(self._fd)

    def release(self) -> None:
        if not self.locked:
            return

        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove pid file {self.path}: {e}")

        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None


def daemonize() -> None:
    """Detach from the controlling terminal with the classic double fork."""

    try:
        if os.fork() > 0:
            os._exit(0)
        os.setsid()
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        raise ProcessError(f"Failed to detach: {e}") from e

    os.chdir("/")
    os.umask(0o022)

    sys.stdout.flush()
    sys.stderr.flush()
    with open(os.devnull, "r+b") as devnull:
        for stream in (sys.stdin, sys.stdout, sys.stderr):
            os.dup2(devnull.fileno(), stream.fileno())


def drop_privileges(user: str) -> None:
    """Switch the process to ``user`` and its groups."""

    try:
        account = pwd.getpwnam(user)
    except KeyError as e:
        raise PrivilegeError(f"Unknown user '{user}'", details={"user": user}) from e

    if os.getuid() == account.pw_uid:
        return

    groups = [g.gr_gid for g in grp.getgrall() if user in g.gr_mem]

    try:
        os.setgroups(sorted({account.pw_gid, *groups}))
        os.setgid(account.pw_gid)
        os.setuid(account.pw_uid)
    except OSError as e:
        raise PrivilegeError(
            f"Cannot switch to user '{user}': {e}", details={"user": user}
        ) from e

    logger.info(f"Running as {user} (uid {account.pw_uid})")
