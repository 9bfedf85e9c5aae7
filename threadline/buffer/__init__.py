"""
Buffer Engine - Stream Segmentation

Turns buffered channel and thread messages into closed conversation chunks.

Key Components:
- ChannelBufferStore: Bounded per-channel main and thread buffers
- PrivacyFilter: Drops messages that must never be analyzed
- GapSegmenter: Cuts filtered messages into chunks at idle gaps
- EvaluationScheduler: Decides which channels are due and drains them

Rules:
1. Filter first, then measure gaps
2. A chunk is cut only once its conversation has gone quiet
3. Threads are one chunk each, never re-split
4. Draining resets the channel counter even when nothing closed
5. Drained chunks are gone from the buffers (at-most-once)
"""

from .privacy import PrivacyFilter
from .store import ChannelBufferStore
from .segmenter import GapSegmenter, MainSegmentation
from .scheduler import EvaluationScheduler

__all__ = [
    "PrivacyFilter",
    "ChannelBufferStore",
    "GapSegmenter",
    "MainSegmentation",
    "EvaluationScheduler",
]
