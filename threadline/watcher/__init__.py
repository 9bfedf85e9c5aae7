"""
Watcher - Transport and Emission Glue

Receives chat events, feeds the buffer engine and forwards drained chunks.

Key Components:
- SlackHandler: Slack Events API -> Message
- SlackDirectory: Cached user/channel name resolution
- ChunkForwarder: Delivers chunks to the downstream consumer
- create_app: FastAPI app wiring it all together
"""

from .directory import SlackDirectory, build_message_link
from .forwarder import ChunkForwarder
from .handlers import BaseHandler, SlackHandler

__all__ = [
    "SlackDirectory",
    "build_message_link",
    "ChunkForwarder",
    "BaseHandler",
    "SlackHandler",
]
