"""In-memory per-user classification statistics.

The store is owned by the daemon's event loop; every mutation happens
through ``record``, ``reset`` or ``replace`` so callers never hold a
live reference into it.
"""

from dataclasses import dataclass, replace as copy_stats
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class Outcome(Enum):
    """Classification result of a message."""

    CLEAN = "clean"
    SPAM = "spam"


@dataclass
class UserStats:
    """Running counters for one user identity."""

    clean: int = 0
    spam: int = 0
    score: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def total(self) -> int:
        return self.clean + self.spam

    @property
    def average(self) -> float:
        return self.score / self.total if self.total else 0.0

    @property
    def clean_rate(self) -> float:
        return self.clean / self.total * 100 if self.total else 0.0

    @property
    def spam_rate(self) -> float:
        return self.spam / self.total * 100 if self.total else 0.0

    def add(self, outcome: Outcome, score: float) -> None:
        """Fold one scored message into the counters."""

        if outcome is Outcome.SPAM:
            self.spam += 1
        else:
            self.clean += 1

        self.score += score
        self.min = score if self.min is None else min(self.min, score)
        self.max = score if self.max is None else max(self.max, score)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted record shape."""
        return {
            "clean": self.clean,
            "spam": self.spam,
            "score": self.score,
            "min": self.min,
            "max": self.max,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserStats":
        return cls(
            clean=int(data.get("clean", 0)),
            spam=int(data.get("spam", 0)),
            score=float(data.get("score", 0.0)),
            min=None if data.get("min") is None else float(data["min"]),
            max=None if data.get("max") is None else float(data["max"]),
        )


class StatStore:
    """Mapping from user identity to ``UserStats``."""

    def __init__(self, entries: Optional[Mapping[str, UserStats]] = None):
        self._entries: Dict[str, UserStats] = {}
        if entries:
            self.replace(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user: object) -> bool:
        return user in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.users())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatStore):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"StatStore(users={len(self._entries)})"

    def record(self, user: str, outcome: Outcome, score: float) -> None:
        """Count one message for ``user``, creating the entry on first sight."""

        stats = self._entries.get(user)
        if stats is None:
            stats = self._entries[user] = UserStats()
        stats.add(outcome, score)

    def reset(self) -> None:
        """Discard every entry."""
        self._entries = {}

    def replace(self, entries: Mapping[str, UserStats]) -> None:
        """Substitute the whole store, copying the incoming records."""
        self._entries = {user: copy_stats(stats) for user, stats in entries.items()}

    def snapshot(self) -> Mapping[str, UserStats]:
        """Read-only mapping of detached copies."""
        return MappingProxyType(
            {user: copy_stats(stats) for user, stats in self._entries.items()}
        )

    def get(self, user: str) -> Optional[UserStats]:
        stats = self._entries.get(user)
        return copy_stats(stats) if stats is not None else None

    def users(self) -> List[str]:
        return sorted(self._entries)

    def totals(self) -> Tuple[int, int]:
        """Aggregate (clean, spam) across all users."""

        clean = sum(stats.clean for stats in self._entries.values())
        spam = sum(stats.spam for stats in self._entries.values())
        return clean, spam

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {user: self._entries[user].to_dict() for user in self.users()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> "StatStore":
        return cls({user: UserStats.from_dict(record) for user, record in data.items()})
