"""
Base Handler

Abstract base class for transport-specific event handlers.
Every transport converts its events into the common Message format before
anything reaches the buffers.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from ...common.models import Message


class BaseHandler(ABC):
    """
    Abstract base class for transport handlers.

    Each handler must implement:
    - parse_event: Convert a raw event to a Message
    - verify_signature: Verify the webhook signature (if applicable)
    """

    def __init__(self, source_name: str, watch_channel_ids: Optional[Iterable[str]] = None):
        """
        Initialize handler.

        Args:
            source_name: Name of the transport (e.g., "slack")
            watch_channel_ids: Channels to buffer; empty means all channels
        """
        self.source_name = source_name
        self._watch_channel_ids = frozenset(watch_channel_ids or ())

    @property
    def watch_channel_ids(self) -> frozenset:
        return self._watch_channel_ids

    @abstractmethod
    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Message]:
        """
        Parse raw event data into a Message.

        Args:
            raw_data: Raw event data from the transport

        Returns:
            Message object or None if the event should be ignored

        Raises:
            InvalidMessage: if the event looks like a message but lacks a
                channel or a usable timestamp
        """
        pass

    @abstractmethod
    def verify_signature(
        self,
        body: bytes,
        signature: str,
        timestamp: str
    ) -> bool:
        """
        Verify the webhook signature.

        Args:
            body: Raw request body
            signature: Signature from headers
            timestamp: Timestamp from headers

        Returns:
            True if signature is valid
        """
        pass

    def should_process(self, message: Message) -> bool:
        """
        Check if a message belongs to a watched channel.

        Content rules (short text, keywords, code) are not decided here:
        the privacy filter applies them at segmentation time so that every
        message still counts toward the evaluation trigger.
        """
        if self._watch_channel_ids and message.channel_id not in self._watch_channel_ids:
            return False
        return True
