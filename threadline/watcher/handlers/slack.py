"""
Slack Handler

Handles Slack Events API webhooks and converts them to Messages.
"""

import hmac
import hashlib
import time
from typing import Optional, Dict, Any, Iterable

from ...common.models import Message
from ..directory import SlackDirectory
from .base import BaseHandler

# Slack replays requests for up to 5 minutes; older signatures are rejected
SIGNATURE_MAX_AGE_SECONDS = 300


class SlackHandler(BaseHandler):
    """
    Handler for Slack Events API webhooks.

    Processes:
    - message events in channels and threads

    Ignores:
    - Bot messages
    - Any message with a subtype (edits, deletions, joins, broadcasts)
    - Non-message events
    - Messages outside the watched channels
    """

    def __init__(
        self,
        signing_secret: str = "",
        watch_channel_ids: Optional[Iterable[str]] = None,
        directory: Optional[SlackDirectory] = None,
    ):
        """
        Initialize Slack handler.

        Args:
            signing_secret: Slack signing secret for verification
            watch_channel_ids: Channels to buffer; empty means all
            directory: Resolves author display names (IDs are used without one)
        """
        super().__init__("slack", watch_channel_ids)
        self._signing_secret = signing_secret
        self._directory = directory

    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Message]:
        """
        Parse a Slack event callback into a Message.

        Raises:
            InvalidMessage: if a message event has no channel or ts
        """
        if raw_data.get("type") != "event_callback":
            return None

        event = raw_data.get("event", {})
        if event.get("type") != "message":
            return None

        if event.get("bot_id") or event.get("subtype") is not None:
            return None

        channel = event.get("channel", "")
        # Unwatched channels never cost a users.info lookup
        if self.watch_channel_ids and channel and channel not in self.watch_channel_ids:
            return None

        user = event.get("user", "")
        author_name = user
        if self._directory is not None:
            author_name = await self._directory.user_name(user)

        ts = event.get("ts", "")
        return Message(
            id=ts,
            channel_id=channel,
            thread_id=event.get("thread_ts"),
            author_id=user,
            author_name=author_name,
            text=event.get("text") or "",
            timestamp=ts,
        )

    def verify_signature(
        self,
        body: bytes,
        signature: str,
        timestamp: str
    ) -> bool:
        """
        Verify Slack request signature (v0 HMAC-SHA256).

        Args:
            body: Raw request body
            signature: X-Slack-Signature header
            timestamp: X-Slack-Request-Timestamp header

        Returns:
            True if signature is valid
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        try:
            request_age = abs(time.time() - int(timestamp))
        except ValueError:
            return False
        if request_age > SIGNATURE_MAX_AGE_SECONDS:
            return False

        return hmac.compare_digest(self.sign(body, timestamp), signature)

    def sign(self, body: bytes, timestamp: str) -> str:
        """Compute the ``v0=`` signature Slack sends for a body"""
        basestring = b"v0:" + timestamp.encode("utf-8") + b":" + body
        digest = hmac.new(
            self._signing_secret.encode("utf-8"),
            basestring,
            hashlib.sha256,
        ).hexdigest()
        return f"v0={digest}"

    def is_thread_reply(self, message: Message) -> bool:
        return message.thread_id is not None and message.thread_id != message.id

    def is_url_verification(self, raw_data: Dict[str, Any]) -> bool:
        """Check if request is URL verification"""
        return raw_data.get("type") == "url_verification"

    def get_challenge(self, raw_data: Dict[str, Any]) -> Optional[str]:
        """Get challenge for URL verification"""
        if self.is_url_verification(raw_data):
            return raw_data.get("challenge")
        return None
