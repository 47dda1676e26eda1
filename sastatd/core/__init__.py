"""Statistics model, log parsing, log following and snapshot persistence."""

from .parser import ClassificationEvent, parse_line
from .persistence import PersistenceManager
from .stats import Outcome, StatStore, UserStats
from .tailer import LineEvent, LogTailer, RollEvent, TailPosition, TailState

__all__ = [
    "ClassificationEvent",
    "LineEvent",
    "LogTailer",
    "Outcome",
    "PersistenceManager",
    "RollEvent",
    "StatStore",
    "TailPosition",
    "TailState",
    "UserStats",
    "parse_line",
]
