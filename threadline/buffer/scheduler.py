"""
Evaluation Scheduler

Decides which channels are due and drains them into conversation chunks.

A channel is due when ANY of these holds:
1. ``unevaluated_count >= evaluation_threshold``
2. Main is non-empty and its last message is older than the gap threshold
3. Some thread's last activity is older than the gap threshold

Draining a due channel always resets its counter, even when no chunk came
out. After that the count rule stays quiet until ``evaluation_threshold``
more messages arrive, and only the gap rules can close what is pending.
"""

import logging
from typing import Iterable, List, Optional

from ..common.clock import Clock, system_clock
from ..common.config import BufferConfig
from ..common.models import ChannelSnapshot, ConversationChunk, Message
from .privacy import PrivacyFilter
from .segmenter import GapSegmenter
from .store import ChannelBufferStore

logger = logging.getLogger("threadline.buffer.scheduler")


class EvaluationScheduler:
    """
    Glue between the store, the privacy filter and the segmenter.

    Chunks are delivered the instant ``drain`` returns them: the store has
    already been mutated, and there is no replay if the consumer fails.
    """

    def __init__(
        self,
        store: ChannelBufferStore,
        config: Optional[BufferConfig] = None,
        privacy_filter: Optional[PrivacyFilter] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._config = config or BufferConfig()
        self._filter = privacy_filter or PrivacyFilter()
        self._clock = clock or system_clock
        self._segmenter = GapSegmenter(
            gap_minutes=self._config.conversation_gap_minutes,
            min_messages=self._config.min_messages_for_chunk,
        )

    @property
    def store(self) -> ChannelBufferStore:
        return self._store

    @property
    def segmenter(self) -> GapSegmenter:
        return self._segmenter

    # ------------------------------------------------------------------
    # Due checks
    # ------------------------------------------------------------------

    def _snapshot_is_due(self, snapshot: ChannelSnapshot) -> bool:
        if snapshot.unevaluated_count >= self._config.evaluation_threshold:
            return True

        now = self._clock()
        if snapshot.main and self._segmenter.is_idle(snapshot.main[-1].timestamp, now):
            return True

        return any(
            thread.messages and self._segmenter.is_idle(thread.last_activity, now)
            for thread in snapshot.threads.values()
        )

    def is_due(self, channel_id: str) -> bool:
        if not self._store.has_channel(channel_id):
            return False
        return self._snapshot_is_due(self._store.snapshot(channel_id))

    def collect_due(self) -> List[str]:
        """Due channels in store order"""
        return [cid for cid in self._store.channel_ids() if self.is_due(cid)]

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain_channel(self, channel_id: str) -> List[ConversationChunk]:
        """
        Segment one channel if it is due, mutate its buffers and reset its
        counter. Returns [] without touching anything when not due.
        """
        with self._store.channel_lock(channel_id) as registered:
            if not registered:
                return []
            snapshot = self._store.snapshot(channel_id)
            if not self._snapshot_is_due(snapshot):
                return []

            now = self._clock()
            chunks: List[ConversationChunk] = []

            main = self._segmenter.segment_main(
                channel_id, self._filter.filter(snapshot.main), now
            )
            chunks.extend(main.chunks)
            if main.clear_main:
                self._store.clear_main(channel_id)
            elif main.keep_from is not None:
                self._store.trim_main(channel_id, main.keep_from)

            for thread_id, thread in snapshot.threads.items():
                chunk = self._segmenter.segment_thread(
                    channel_id,
                    thread_id,
                    self._filter.filter(thread.messages),
                    thread.last_activity,
                    now,
                )
                if chunk is not None:
                    chunks.append(chunk)
                    self._store.close_thread(channel_id, thread_id)

            self._store.reset_evaluation(channel_id)

        chunks.sort(key=lambda c: c.start_time)
        if chunks:
            logger.info(
                "Channel %s: emitted %d chunk(s), %d message(s) pending in main",
                channel_id, len(chunks), main.pending,
            )
        else:
            logger.debug("Channel %s evaluated, nothing closed yet", channel_id)
        return chunks

    def drain(self, channel_ids: Optional[Iterable[str]] = None) -> List[ConversationChunk]:
        """Drain every due channel (or the given subset), one lock at a time"""
        targets = list(channel_ids) if channel_ids is not None else self._store.channel_ids()
        chunks: List[ConversationChunk] = []
        for channel_id in targets:
            chunks.extend(self.drain_channel(channel_id))
        return chunks

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def on_message(self, message: Message) -> List[ConversationChunk]:
        """Ingest, then due-check and drain only the message's own channel"""
        message = self._store.ingest(message)
        return self.drain_channel(message.channel_id)

    def tick(self) -> List[ConversationChunk]:
        """Periodic timer entry point: due-check and drain every channel"""
        return self.drain()
