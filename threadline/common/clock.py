"""
Clock

Every idle-gap decision reads "now" through an injected callable so that
segmentation can be tested without waiting on real time.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current wall-clock time in UTC"""
    return datetime.now(timezone.utc)


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0
