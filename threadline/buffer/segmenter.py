"""
Gap Segmenter

Cuts filtered, time-ordered messages into closed conversation chunks.

Main sequence:
1. Fewer than 2 messages -> nothing
2. Walk pairwise; a delta above the gap threshold ends the current run.
   Runs of at least ``min_messages`` become chunks, shorter ones are dropped.
3. The final run becomes a chunk only if it is long enough AND "now" is more
   than the gap threshold past its last message.
4. Main is cleared if and only if the final run was emitted. Any earlier,
   unclosed prefix goes with it. When only earlier runs were emitted, main
   is trimmed up to the start of the pending final run so nothing is
   delivered twice.

Threads are never sub-segmented: the whole filtered thread is one chunk once
its last activity is more than the gap threshold behind "now".
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from ..common.clock import minutes_between
from ..common.models import ConversationChunk, Message


@dataclass
class MainSegmentation:
    """Chunks cut from a main sequence and how main must be mutated"""
    chunks: List[ConversationChunk] = field(default_factory=list)
    clear_main: bool = False
    pending: int = 0  # messages in the final run left for a later pass
    keep_from: Optional[Message] = None  # first message of a pending final run


class GapSegmenter:
    """
    Pure segmentation over already-filtered messages.

    Holds no state between calls; the threshold and minimum size are fixed
    at construction.
    """

    def __init__(self, gap_minutes: float = 5, min_messages: int = 2):
        """
        Initialize segmenter.

        Args:
            gap_minutes: Idle gap that ends a conversation
            min_messages: Smallest run that may become a chunk
        """
        if gap_minutes < 0:
            raise ValueError("gap_minutes must not be negative")
        if min_messages < 1:
            raise ValueError("min_messages must be at least 1")
        self._gap_minutes = gap_minutes
        self._min_messages = min_messages

    @property
    def gap_minutes(self) -> float:
        return self._gap_minutes

    @property
    def min_messages(self) -> int:
        return self._min_messages

    def is_idle(self, last: datetime, now: datetime) -> bool:
        """True once more than the gap threshold has passed since ``last``"""
        return minutes_between(last, now) > self._gap_minutes

    def split_runs(self, messages: Sequence[Message]) -> List[List[Message]]:
        """Split at every consecutive delta that exceeds the gap threshold"""
        runs: List[List[Message]] = []
        current: List[Message] = []
        for message in messages:
            if current and minutes_between(current[-1].timestamp, message.timestamp) > self._gap_minutes:
                runs.append(current)
                current = []
            current.append(message)
        if current:
            runs.append(current)
        return runs

    def segment_main(
        self,
        channel_id: str,
        messages: Sequence[Message],
        now: datetime,
    ) -> MainSegmentation:
        """
        Segment a channel's filtered main sequence.

        Closed runs before the tail are emitted as they are found, but none
        of them clears main on its own: only a closed final run does.
        """
        if len(messages) < 2:
            return MainSegmentation(pending=len(messages))

        runs = self.split_runs(messages)
        *closed, final = runs

        chunks = [
            ConversationChunk.from_messages(channel_id, run)
            for run in closed
            if len(run) >= self._min_messages
        ]

        if len(final) >= self._min_messages and self.is_idle(final[-1].timestamp, now):
            chunks.append(ConversationChunk.from_messages(channel_id, final))
            return MainSegmentation(chunks=chunks, clear_main=True)

        # Earlier runs were emitted: only the pending tail may stay buffered
        keep_from = final[0] if chunks else None
        return MainSegmentation(chunks=chunks, pending=len(final), keep_from=keep_from)

    def segment_thread(
        self,
        channel_id: str,
        thread_id: str,
        messages: Sequence[Message],
        last_activity: datetime,
        now: datetime,
    ) -> Optional[ConversationChunk]:
        """Whole thread as one chunk once idle and large enough, else None"""
        if len(messages) < self._min_messages:
            return None
        if not self.is_idle(last_activity, now):
            return None
        return ConversationChunk.from_messages(channel_id, list(messages), thread_id=thread_id)
