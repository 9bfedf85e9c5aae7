"""
Channel Buffer Store

Owns per-channel buffers: a bounded main sequence plus one bounded sequence
per thread, and the counters that drive evaluation.

Locking is per channel. The registry lock only guards creation and removal
of channel entries, so ingestion into one channel never waits on a drain of
another.
"""

import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Iterator, List, Mapping, Optional, Union

from ..common.clock import Clock, system_clock
from ..common.models import (
    ChannelSnapshot,
    Message,
    ThreadSnapshot,
    coerce_message,
)

logger = logging.getLogger("threadline.buffer.store")


@dataclass
class ThreadState:
    """Buffered messages of one thread"""
    messages: Deque[Message]
    last_activity: datetime


@dataclass
class ChannelState:
    """Buffered state of one channel"""
    main: Deque[Message]
    threads: Dict[str, ThreadState] = field(default_factory=dict)
    unevaluated_count: int = 0
    last_evaluated_at: Optional[datetime] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def message_count(self) -> int:
        return len(self.main) + sum(len(t.messages) for t in self.threads.values())


class ChannelBufferStore:
    """
    In-memory buffers for every watched channel.

    Channels are created lazily on their first message and live until
    ``clear_channel`` or ``clear_all``. Every sequence is FIFO-bounded at
    ``max_messages``; eviction never touches ``unevaluated_count``.
    """

    def __init__(self, max_messages: int = 20, clock: Optional[Clock] = None):
        """
        Initialize the store.

        Args:
            max_messages: Capacity of main and of each thread sequence
            clock: "now" provider used for ``last_evaluated_at``
        """
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._max_messages = max_messages
        self._clock = clock or system_clock
        self._channels: Dict[str, ChannelState] = {}
        self._registry_lock = threading.Lock()

    @property
    def max_messages(self) -> int:
        return self._max_messages

    # ------------------------------------------------------------------
    # Channel registry
    # ------------------------------------------------------------------

    def _get_or_create(self, channel_id: str) -> ChannelState:
        with self._registry_lock:
            state = self._channels.get(channel_id)
            if state is None:
                state = ChannelState(main=deque(maxlen=self._max_messages))
                self._channels[channel_id] = state
                logger.debug("Created buffer for channel %s", channel_id)
            return state

    def _get(self, channel_id: str) -> Optional[ChannelState]:
        with self._registry_lock:
            return self._channels.get(channel_id)

    def channel_ids(self) -> List[str]:
        """Known channels, in creation order"""
        with self._registry_lock:
            return list(self._channels)

    def has_channel(self, channel_id: str) -> bool:
        return self._get(channel_id) is not None

    @contextmanager
    def channel_lock(self, channel_id: str) -> Iterator[bool]:
        """
        Hold one channel's exclusive section (re-entrant).

        Yields False, without creating anything, when the channel is not
        registered or was cleared while waiting for its lock.
        """
        state = self._get(channel_id)
        if state is None:
            yield False
            return
        with state.lock:
            yield self._get(channel_id) is state

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, message: Union[Message, Mapping[str, Any]]) -> Message:
        """
        Append a message to main or to its thread, evicting the oldest
        element when the target sequence is over capacity.

        Raises:
            InvalidMessage: if channel or timestamp are missing/unparsable.
                Nothing is mutated in that case.
        """
        message = coerce_message(message)
        while True:
            state = self._get_or_create(message.channel_id)
            with state.lock:
                # A clear_channel may have unregistered the state meanwhile
                if self._get(message.channel_id) is state:
                    self._append(state, message)
                    return message

    def _append(self, state: ChannelState, message: Message) -> None:
        """Route and append under the channel lock"""
        if message.thread_id is None:
            target = state.main
        else:
            thread = state.threads.get(message.thread_id)
            if thread is None:
                thread = ThreadState(
                    messages=deque(maxlen=self._max_messages),
                    last_activity=message.timestamp,
                )
                state.threads[message.thread_id] = thread
            thread.last_activity = message.timestamp
            target = thread.messages

        if len(target) == self._max_messages:
            evicted = target[0]
            logger.debug(
                "Evicting message %s from channel %s (capacity %d)",
                evicted.id, message.channel_id, self._max_messages,
            )
        # deque(maxlen) drops the oldest element on append
        target.append(message)
        state.unevaluated_count += 1

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def snapshot(self, channel_id: str) -> ChannelSnapshot:
        """Copy of a channel's buffers; unknown channels yield an empty snapshot"""
        state = self._get(channel_id)
        if state is None:
            return ChannelSnapshot(channel_id=channel_id, main=())

        with state.lock:
            threads = {
                thread_id: ThreadSnapshot(
                    thread_id=thread_id,
                    messages=tuple(thread.messages),
                    last_activity=thread.last_activity,
                )
                for thread_id, thread in state.threads.items()
            }
            return ChannelSnapshot(
                channel_id=channel_id,
                main=tuple(state.main),
                threads=threads,
                unevaluated_count=state.unevaluated_count,
                last_evaluated_at=state.last_evaluated_at,
            )

    def unevaluated_count(self, channel_id: str) -> int:
        state = self._get(channel_id)
        if state is None:
            return 0
        with state.lock:
            return state.unevaluated_count

    def message_count(self, channel_id: str) -> int:
        """Buffered messages in main plus all threads of one channel"""
        state = self._get(channel_id)
        if state is None:
            return 0
        with state.lock:
            return state.message_count

    def total_message_count(self) -> int:
        """Buffered messages across all channels (diagnostics only)"""
        return sum(self.message_count(channel_id) for channel_id in self.channel_ids())

    # ------------------------------------------------------------------
    # Mutation after segmentation
    # ------------------------------------------------------------------

    def clear_main(self, channel_id: str) -> None:
        state = self._get(channel_id)
        if state is None:
            return
        with state.lock:
            state.main.clear()

    def trim_main(self, channel_id: str, keep_from: Message) -> int:
        """
        Drop main messages that precede ``keep_from``. Returns the number
        dropped; nothing is dropped if ``keep_from`` is no longer buffered.
        """
        state = self._get(channel_id)
        if state is None:
            return 0
        with state.lock:
            if not any(m is keep_from for m in state.main):
                return 0
            dropped = 0
            while state.main[0] is not keep_from:
                state.main.popleft()
                dropped += 1
            return dropped

    def close_thread(self, channel_id: str, thread_id: str) -> None:
        state = self._get(channel_id)
        if state is None:
            return
        with state.lock:
            state.threads.pop(thread_id, None)

    def reset_evaluation(self, channel_id: str) -> None:
        state = self._get(channel_id)
        if state is None:
            return
        with state.lock:
            state.unevaluated_count = 0
            state.last_evaluated_at = self._clock()

    # ------------------------------------------------------------------
    # Administrative resets
    # ------------------------------------------------------------------

    def clear_channel(self, channel_id: str) -> bool:
        """Drop a channel entirely. Returns False if it was unknown."""
        with self._registry_lock:
            state = self._channels.pop(channel_id, None)
        if state is None:
            return False
        logger.info("Cleared channel %s", channel_id)
        return True

    def clear_all(self) -> int:
        """Drop every channel. Returns how many were dropped."""
        with self._registry_lock:
            count = len(self._channels)
            self._channels.clear()
        logger.info("Cleared all %d channel buffers", count)
        return count
