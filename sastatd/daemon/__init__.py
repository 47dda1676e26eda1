"""Statistics daemon: lifecycle, command server and process plumbing.

This package provides the daemon infrastructure:
- StatsDaemon: Owns the store, tailer, server and heartbeat on one loop
- CommandServer: TCP line protocol over the shared store
- Command: The closed set of protocol commands
- PidFile: Single-instance lock for detached runs

Usage Examples
--------------

Start the daemon:
    >>> from sastatd.daemon import run_daemon
    >>> from sastatd.utils.config import DaemonConfig
    >>>
    >>> exit_code = await run_daemon(DaemonConfig(logfile="/var/log/mail.log"))

Query a running daemon:
    $ printf 'brief\\nquit\\n' | nc localhost 4321
    clean:120:80
    spam:30:20
    total:150:100

Notes
-----
- No authentication or encryption on the protocol
- Reset and dump persist the emptied store immediately
"""

from .lifecycle import StatsDaemon, run_daemon
from .process import PidFile, daemonize, drop_privileges
from .protocol import Command
from .server import ClientConnection, CommandServer

__all__ = [
    "StatsDaemon",
    "run_daemon",
    "CommandServer",
    "ClientConnection",
    "Command",
    "PidFile",
    "daemonize",
    "drop_privileges",
]
