"""Main entry point for the sastatd daemon."""

import argparse
import asyncio
import sys
from typing import List, Optional

from rich.console import Console

from sastatd.daemon.lifecycle import run_daemon
from sastatd.daemon.process import PidFile, daemonize, drop_privileges
from sastatd.utils.config import DaemonConfig, ListenConfig
from sastatd.utils.errors import ConfigurationError, ProcessError, format_error_message
from sastatd.utils.logging import get_logger, init_logging

from .cli_parser import setup_argument_parser

logger = get_logger(__name__)


def build_config(args: argparse.Namespace) -> DaemonConfig:
    """Turn parsed arguments into a validated DaemonConfig."""

    return DaemonConfig.build(
        logfile=args.logfile,
        database=args.database,
        listen=ListenConfig.parse(args.listen),
        interval=args.interval,
        poll_interval=args.poll_interval,
        replay=args.replay,
        pidfile=args.pidfile,
        user=args.user,
        debug=args.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = Console(stderr=True)
    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e.message}[/red]")
        return 2

    init_logging("DEBUG" if config.debug else "INFO", foreground=config.debug)
    pidfile = PidFile(config.pidfile)

    try:
        pidfile.acquire()

        if not config.debug:
            daemonize()
            init_logging("INFO", foreground=False)

        pidfile.write_pid()

        if config.user:
            drop_privileges(config.user)

        return asyncio.run(run_daemon(config))

    except ProcessError as e:
        logger.error(e.message)
        console.print(f"[red]{format_error_message(e)}[/red]")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    finally:
        pidfile.release()


if __name__ == "__main__":
    sys.exit(main())
