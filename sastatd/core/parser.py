"""Recognise spamd classification reports in raw log lines."""

import re
from dataclasses import dataclass
from typing import Optional

from .stats import Outcome

REPORT_PATTERN = re.compile(
    r"spamd\[(?P<worker>\d+)\]:\s+spamd:\s+"
    r"(?P<outcome>clean message|identified spam)\s+"
    r"\((?P<score>[-+]?[\d.]+)/(?P<threshold>[-+]?[\d.]+)\)\s+"
    r"for\s+(?P<user>[^\s:]+)(?::\d+)?(?:\s|$)"
)

OUTCOMES = {
    "clean message": Outcome.CLEAN,
    "identified spam": Outcome.SPAM,
}


@dataclass(frozen=True)
class ClassificationEvent:
    """One scored message attributed to a user."""

    user: str
    outcome: Outcome
    score: float
    worker: int = 0
    threshold: Optional[float] = None


def parse_line(line: str) -> Optional[ClassificationEvent]:
    """Return the event carried by ``line``, or None for any other line."""

    match = REPORT_PATTERN.search(line)
    if match is None:
        return None

    try:
        score = float(match["score"])
        threshold = float(match["threshold"])
    except ValueError:
        return None

    return ClassificationEvent(
        user=match["user"],
        outcome=OUTCOMES[match["outcome"]],
        score=score,
        worker=int(match["worker"]),
        threshold=threshold,
    )
