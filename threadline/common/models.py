"""
Core Data Model

Message is the unit that flows in from the transport, ConversationChunk the
unit that flows out to the consumer. Both are immutable so a drained chunk
never depends on live buffer state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class InvalidMessage(ValueError):
    """Raised when an inbound message lacks a channel or a usable timestamp."""
    pass


TimestampLike = Union[datetime, int, float, str]


def parse_timestamp(value: Optional[TimestampLike]) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch seconds, Slack
    ``ts`` strings ("1700000000.000100") and ISO-8601 strings.

    Raises:
        InvalidMessage: if the value is missing or cannot be parsed
    """
    if value is None or value == "":
        raise InvalidMessage("timestamp is required")

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    # bool is an int subclass and never a real timestamp
    if isinstance(value, bool):
        raise InvalidMessage(f"unparsable timestamp: {value!r}")

    if isinstance(value, (int, float)):
        return _from_epoch(value)

    if isinstance(value, str):
        text = value.strip()
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidMessage(f"unparsable timestamp: {value!r}") from None
        return parse_timestamp(parsed)

    raise InvalidMessage(f"unparsable timestamp: {value!r}")


def _from_epoch(seconds: float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidMessage(f"timestamp out of range: {seconds!r}") from e


@dataclass(frozen=True)
class Message:
    """
    A single chat message scoped to a channel and optionally a thread.

    This is the standardized format the buffer works with, regardless of
    which transport delivered it.
    """
    id: str
    channel_id: str
    timestamp: datetime
    text: str = ""
    author_id: str = ""
    author_name: str = ""
    thread_id: Optional[str] = None

    def __post_init__(self):
        if not self.channel_id:
            raise InvalidMessage("channel_id is required")
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))
        if self.text is None:
            object.__setattr__(self, "text", "")
        if self.thread_id == "":
            object.__setattr__(self, "thread_id", None)

    @property
    def is_threaded(self) -> bool:
        return self.thread_id is not None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        """Build a Message from a mapping with snake_case or camelCase keys"""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            id=str(pick("id", "ts", default="")),
            channel_id=str(pick("channel_id", "channelId", default="")),
            thread_id=pick("thread_id", "threadId", "thread_ts"),
            author_id=str(pick("author_id", "authorId", "user", default="")),
            author_name=str(pick("author_name", "authorName", default="")),
            text=str(pick("text", default="")),
            timestamp=pick("timestamp"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "thread_id": self.thread_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


def coerce_message(raw: Union[Message, Mapping[str, Any]]) -> Message:
    """Accept either a Message or a raw mapping; raise InvalidMessage otherwise"""
    if isinstance(raw, Message):
        return raw
    if isinstance(raw, Mapping):
        return Message.from_dict(raw)
    raise InvalidMessage(f"expected Message or mapping, got {type(raw).__name__}")


@dataclass(frozen=True)
class ThreadSnapshot:
    """Read-only copy of one thread's buffered state"""
    thread_id: str
    messages: Tuple[Message, ...]
    last_activity: datetime


@dataclass(frozen=True)
class ChannelSnapshot:
    """Read-only copy of a channel's buffers, handed to segmentation"""
    channel_id: str
    main: Tuple[Message, ...]
    threads: Dict[str, ThreadSnapshot] = field(default_factory=dict)
    unevaluated_count: int = 0
    last_evaluated_at: Optional[datetime] = None

    @property
    def message_count(self) -> int:
        return len(self.main) + sum(len(t.messages) for t in self.threads.values())


@dataclass(frozen=True)
class ConversationChunk:
    """A closed, contiguous group of messages judged to be one finished exchange"""
    channel_id: str
    messages: Tuple[Message, ...]
    start_time: datetime
    end_time: datetime
    thread_id: Optional[str] = None

    @classmethod
    def from_messages(
        cls,
        channel_id: str,
        messages: List[Message],
        thread_id: Optional[str] = None,
    ) -> "ConversationChunk":
        if not messages:
            raise ValueError("a chunk needs at least one message")
        return cls(
            channel_id=channel_id,
            messages=tuple(messages),
            start_time=messages[0].timestamp,
            end_time=messages[-1].timestamp,
            thread_id=thread_id,
        )

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def participants(self) -> List[str]:
        """Distinct author names in order of first appearance"""
        seen: List[str] = []
        for message in self.messages:
            name = message.author_name or message.author_id
            if name and name not in seen:
                seen.append(name)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "thread_id": self.thread_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "participants": self.participants,
            "messages": [m.to_dict() for m in self.messages],
        }
