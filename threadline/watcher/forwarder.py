"""
Chunk Forwarder

Hands drained chunks to the downstream consumer. Delivery is at-most-once:
by the time a chunk reaches this module its messages are already gone from
the buffers, so failures are logged and the chunk is dropped.
"""

import logging
from typing import Dict, List, Optional, Sequence

import httpx

from ..common.models import ConversationChunk
from .directory import SlackDirectory, build_message_link

logger = logging.getLogger("threadline.watcher.forwarder")


class ChunkForwarder:
    """
    POSTs ``{"chunks": [...]}`` to a consumer endpoint.

    Without a URL it only logs one summary line per chunk. With a directory,
    each serialized chunk carries its channel's display name.
    """

    def __init__(
        self,
        url: str = "",
        timeout: float = 10.0,
        workspace_domain: str = "",
        directory: Optional[SlackDirectory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._workspace_domain = workspace_domain
        self._directory = directory
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._url)

    async def forward(self, chunks: Sequence[ConversationChunk]) -> bool:
        """
        Deliver chunks. Returns True if the consumer accepted them (or there
        was nothing to send), False on any transport or HTTP error.
        """
        if not chunks:
            return True

        for chunk in chunks:
            logger.info(
                "Chunk from %s%s: %d messages, %s -> %s, participants: %s",
                chunk.channel_id,
                f" (thread {chunk.thread_id})" if chunk.thread_id else "",
                chunk.message_count,
                chunk.start_time.isoformat(),
                chunk.end_time.isoformat(),
                ", ".join(chunk.participants) or "-",
            )

        if not self.is_configured:
            return True

        channel_names = await self._channel_names(chunks)
        payload = {
            "chunks": [
                self.serialize(chunk, channel_names.get(chunk.channel_id, chunk.channel_id))
                for chunk in chunks
            ]
        }
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(self._url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Dropping %d chunk(s), forwarding failed: %s", len(chunks), e)
            return False

        logger.info("Forwarded %d chunk(s) to %s", len(chunks), self._url)
        return True

    async def _channel_names(self, chunks: Sequence[ConversationChunk]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        if self._directory is None:
            return names
        for chunk in chunks:
            if chunk.channel_id not in names:
                names[chunk.channel_id] = await self._directory.channel_name(chunk.channel_id)
        return names

    def serialize(self, chunk: ConversationChunk, channel_name: str = "") -> dict:
        """Chunk as JSON plus its channel name and a permalink to its first message"""
        data = chunk.to_dict()
        data["channel_name"] = channel_name or chunk.channel_id
        data["source_link"] = build_message_link(
            self._workspace_domain, chunk.channel_id, chunk.messages[0].id
        )
        return data


def summarize(chunks: Sequence[ConversationChunk]) -> List[dict]:
    """Compact view of chunks for API responses"""
    return [
        {
            "channel_id": chunk.channel_id,
            "thread_id": chunk.thread_id,
            "message_count": chunk.message_count,
            "start_time": chunk.start_time.isoformat(),
            "end_time": chunk.end_time.isoformat(),
        }
        for chunk in chunks
    ]
