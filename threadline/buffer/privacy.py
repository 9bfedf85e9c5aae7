"""
Privacy Filter

Decides which buffered messages must never reach analysis. Filtering runs
before gap computation, so an excluded message never counts as
conversational continuity.
"""

import re
from typing import Iterable, List, Optional

from ..common.config import PrivacyConfig
from ..common.models import Message

# Greedy: everything between the first and last fence counts as code
CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*```")


class PrivacyFilter:
    """
    Stateless exclusion rules.

    A message is excluded if ANY of these holds:
    1. Text starts with the off-record marker
    2. Text contains a blocked keyword (case-insensitive substring)
    3. Fenced code blocks make up more than ``max_code_fraction`` of the text
    4. Text is shorter than ``min_text_length`` characters
    """

    def __init__(self, config: Optional[PrivacyConfig] = None):
        self._config = config or PrivacyConfig()
        self._keywords = [k.lower() for k in self._config.blocked_keywords if k]

    @property
    def config(self) -> PrivacyConfig:
        return self._config

    def exclude(self, message: Message) -> bool:
        """Return True if the message must be kept out of analysis"""
        return self.exclusion_reason(message) is not None

    def exclusion_reason(self, message: Message) -> Optional[str]:
        """Name of the first rule that excludes the message, or None"""
        text = (message.text or "").lower()

        marker = self._config.off_record_marker
        if marker and text.startswith(marker.lower()):
            return "off_record"

        for keyword in self._keywords:
            if keyword in text:
                return "blocked_keyword"

        code_length = sum(len(block) for block in CODE_BLOCK_PATTERN.findall(text))
        if code_length > len(text) * self._config.max_code_fraction:
            return "code_block"

        if len(text) < self._config.min_text_length:
            return "too_short"

        return None

    def filter(self, messages: Iterable[Message]) -> List[Message]:
        """Drop excluded messages, preserving relative order"""
        return [m for m in messages if not self.exclude(m)]
