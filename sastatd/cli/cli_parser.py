"""Argument parser configuration for the sastatd command line"""

import argparse

from sastatd import __version__
from sastatd.utils.paths import DATABASE_PATH, DEFAULT_PORT, PID_PATH


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return number


def positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive number")
    return number


## Argument Groups

def add_daemon_arguments(parser: argparse.ArgumentParser) -> None:
    """Add process control arguments."""

    group = parser.add_argument_group("process", "How the daemon runs")

    group.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Stay in the foreground and log debug output to the console"
    )
    group.add_argument(
        "-u", "--user",
        help="Account to switch to after startup"
    )
    group.add_argument(
        "-P", "--pidfile",
        default=str(PID_PATH),
        help=f"Pid file used as single-instance lock (default: {PID_PATH})"
    )


def add_storage_arguments(parser: argparse.ArgumentParser) -> None:
    """Add snapshot and heartbeat arguments."""

    group = parser.add_argument_group("storage", "Statistics snapshot")

    group.add_argument(
        "-f", "--database",
        default=str(DATABASE_PATH),
        help=f"Snapshot file (default: {DATABASE_PATH})"
    )
    group.add_argument(
        "-i", "--interval",
        type=positive_int,
        default=10,
        help="Seconds between snapshot saves (default: 10)"
    )


def add_input_arguments(parser: argparse.ArgumentParser) -> None:
    """Add watched log and listener arguments."""

    parser.add_argument(
        "logfile",
        help="Mail log to follow"
    )
    parser.add_argument(
        "-l", "-p", "--listen",
        default=str(DEFAULT_PORT),
        metavar="[HOST:]PORT",
        help=f"Address for the statistics protocol (default: {DEFAULT_PORT} on all addresses)"
    )
    parser.add_argument(
        "--replay",
        action="store_true",
        help="Read the log from its beginning instead of its end"
    )
    parser.add_argument(
        "--poll-interval",
        type=positive_float,
        default=1.0,
        help="Seconds between log polls (default: 1.0)"
    )


## Main Parser Setup

def setup_argument_parser() -> argparse.ArgumentParser:
    """Setup the main argument parser for sastatd."""

    parser = argparse.ArgumentParser(
        prog="sastatd",
        description="Collect per-user SpamAssassin statistics from the mail log",
        epilog="Connect to the listen port and send brief, stats, dump, reset or quit."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"sastatd {__version__}",
    )

    add_input_arguments(parser)
    add_storage_arguments(parser)
    add_daemon_arguments(parser)

    return parser
