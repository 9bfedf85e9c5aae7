"""
Threadline Common Module

Shared data model, clock and configuration.
"""

from .clock import Clock, system_clock
from .config import ThreadlineConfig, BufferConfig, PrivacyConfig, load_config
from .models import (
    Message,
    ConversationChunk,
    ChannelSnapshot,
    ThreadSnapshot,
    InvalidMessage,
    coerce_message,
    parse_timestamp,
)

__all__ = [
    "Clock",
    "system_clock",
    "ThreadlineConfig",
    "BufferConfig",
    "PrivacyConfig",
    "load_config",
    "Message",
    "ConversationChunk",
    "ChannelSnapshot",
    "ThreadSnapshot",
    "InvalidMessage",
    "coerce_message",
    "parse_timestamp",
]
