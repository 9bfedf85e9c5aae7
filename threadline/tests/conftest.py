"""Shared fixtures: a hand-driven clock and a message factory."""

from datetime import datetime, timedelta, timezone

import pytest

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, minutes: float) -> None:
        """Jump to T0 + ``minutes``"""
        self.now = T0 + timedelta(minutes=minutes)

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def make_message():
    """Build a Message at T0 + ``minutes``; default text passes the privacy filter"""
    from threadline.common.models import Message

    def _make(msg_id, minutes, text=None, channel="C1", thread=None, author="alice"):
        return Message(
            id=msg_id,
            channel_id=channel,
            thread_id=thread,
            author_id=f"U_{author}",
            author_name=author,
            text=text if text is not None else f"Message {msg_id} about the release plan",
            timestamp=T0 + timedelta(minutes=minutes),
        )

    return _make
