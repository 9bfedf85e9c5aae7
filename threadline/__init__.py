"""
Threadline

Turns a live stream of channel and thread chat messages into closed,
privacy-filtered conversation chunks for downstream analysis.

Philosophy:
- A chunk is only cut when the conversation has gone quiet
- Excluded messages never count as conversational continuity
- Buffers are bounded; nothing is persisted across restarts
- A chunk is delivered the instant it is drained (at-most-once)

Usage:
    from threadline.common import load_config, Message
    from threadline.buffer import ChannelBufferStore, PrivacyFilter, EvaluationScheduler
    from threadline.watcher.server import create_app
"""

__version__ = "0.1.0"
