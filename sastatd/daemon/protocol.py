"""Line protocol spoken on the statistics port.

One command per line, no arguments, case-insensitive. Replies are plain
newline-terminated lines with no envelope.
"""

from enum import Enum
from typing import List

from sastatd.core.stats import StatStore

ERROR_REPLY = "error"


class Command(Enum):
    """Commands accepted from clients."""

    BRIEF = "brief"
    STATS = "stats"
    DUMP = "dump"
    RESET = "reset"
    QUIT = "quit"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, line: str) -> "Command":
        """Map one input line onto a command; anything unrecognised is UNKNOWN."""

        word = line.strip().lower()
        if word == cls.UNKNOWN.value:
            return cls.UNKNOWN

        try:
            return cls(word)
        except ValueError:
            return cls.UNKNOWN


def _percent(part: int, total: int) -> int:
    return round(part / total * 100) if total else 0


def format_brief(store: StatStore) -> List[str]:
    """Aggregate clean/spam/total counts with integer percentages."""

    clean, spam = store.totals()
    total = clean + spam

    return [
        f"clean:{clean}:{_percent(clean, total)}",
        f"spam:{spam}:{_percent(spam, total)}",
        f"total:{total}:{_percent(total, total)}",
    ]


def format_stats(store: StatStore) -> List[str]:
    """One line per user, sorted by identity and padded to the longest one."""

    snapshot = store.snapshot()
    if not snapshot:
        return []

    width = max(len(user) for user in snapshot)
    lines = []

    for user in sorted(snapshot):
        stats = snapshot[user]
        lines.append(
            f"{user:<{width}} "
            f"clean={stats.clean} spam={stats.spam} "
            f"crate={stats.clean_rate:.1f} srate={stats.spam_rate:.1f} "
            f"score={stats.score:.1f} "
            f"min={stats.min or 0.0:.1f} max={stats.max or 0.0:.1f} "
            f"avg={stats.average:.1f}"
        )

    return lines


def encode_reply(lines: List[str]) -> bytes:
    return "".join(f"{line}\n" for line in lines).encode("utf-8")
