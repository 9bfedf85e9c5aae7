"""
Slack Directory

Resolves user and channel display names through the Slack Web API, with
in-process caches. Any failure falls back to the raw ID so that ingestion
never blocks on name resolution.
"""

import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger("threadline.watcher.directory")

SLACK_API_BASE = "https://slack.com/api"


class SlackDirectory:
    """
    Cached ``users.info`` / ``conversations.info`` lookups.

    Transport errors and non-JSON bodies both fall back to the raw ID.
    """

    def __init__(
        self,
        bot_token: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize directory.

        Args:
            bot_token: Slack bot token; without one every lookup returns the ID
            transport: Optional httpx transport (used for testing)
            timeout: Per-request timeout in seconds
        """
        self._bot_token = bot_token
        self._transport = transport
        self._timeout = timeout
        self._users: Dict[str, str] = {}
        self._channels: Dict[str, str] = {}

    @property
    def is_available(self) -> bool:
        return bool(self._bot_token)

    async def _call(self, method: str, params: Dict[str, str]) -> Optional[dict]:
        headers = {"Authorization": f"Bearer {self._bot_token}"}
        async with httpx.AsyncClient(
            base_url=SLACK_API_BASE,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        ) as client:
            response = await client.get(f"/{method}", params=params, headers=headers)
            response.raise_for_status()
            data = response.json()
        if not data.get("ok"):
            logger.warning("Slack %s failed: %s", method, data.get("error", "unknown error"))
            return None
        return data

    async def user_name(self, user_id: str) -> str:
        """Real name, then handle, then the ID itself"""
        if not user_id:
            return ""
        if user_id in self._users:
            return self._users[user_id]
        if not self.is_available:
            return user_id

        try:
            data = await self._call("users.info", {"user": user_id})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Error fetching user info for %s: %s", user_id, e)
            return user_id

        if data is None:
            return user_id
        user = data.get("user") or {}
        name = user.get("real_name") or user.get("name") or user_id
        self._users[user_id] = name
        return name

    async def channel_name(self, channel_id: str) -> str:
        if channel_id in self._channels:
            return self._channels[channel_id]
        if not self.is_available:
            return channel_id

        try:
            data = await self._call("conversations.info", {"channel": channel_id})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Error fetching channel info for %s: %s", channel_id, e)
            return channel_id

        if data is None:
            return channel_id
        name = (data.get("channel") or {}).get("name") or channel_id
        self._channels[channel_id] = name
        return name


def build_message_link(workspace_domain: str, channel_id: str, ts: str) -> str:
    """Permalink to a message; Slack drops the dot from ``ts`` in archive URLs"""
    host = f"{workspace_domain}.slack.com" if workspace_domain else "slack.com"
    return f"https://{host}/archives/{channel_id}/p{ts.replace('.', '')}"
