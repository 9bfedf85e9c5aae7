"""
Configuration Management for Threadline

Loads configuration from ~/.threadline/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("threadline.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".threadline"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_BLOCKED_KEYWORDS = ["confidential", "nda", "salary", "valuation", "runway"]
DEFAULT_OFF_RECORD_MARKER = "\U0001F512"  # lock emoji


@dataclass
class BufferConfig:
    """Buffering, segmentation and trigger settings"""
    max_messages: int = 20
    evaluation_threshold: int = 10
    conversation_gap_minutes: float = 5
    min_messages_for_chunk: int = 2
    evaluation_interval_seconds: float = 120  # tick period, owned by the server host


@dataclass
class PrivacyConfig:
    """Exclusion rules applied before segmentation"""
    blocked_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_KEYWORDS))
    off_record_marker: str = DEFAULT_OFF_RECORD_MARKER
    min_text_length: int = 10
    max_code_fraction: float = 0.5


@dataclass
class SlackConfig:
    """Slack transport configuration"""
    signing_secret: str = ""
    bot_token: str = ""
    watch_channel_ids: List[str] = field(default_factory=list)
    workspace_domain: str = ""
    port: int = 8080


@dataclass
class ForwarderConfig:
    """Downstream chunk consumer endpoint"""
    url: str = ""
    timeout_seconds: float = 10.0


@dataclass
class ThreadlineConfig:
    """Main Threadline configuration"""
    buffer: BufferConfig = field(default_factory=BufferConfig)
    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    forwarder: ForwarderConfig = field(default_factory=ForwarderConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def split_csv(value: str, lower: bool = False) -> List[str]:
    """Split a comma separated setting, trimming and dropping empty items"""
    items = [item.strip() for item in value.split(",")]
    if lower:
        items = [item.lower() for item in items]
    return [item for item in items if item]


def _as_list(value, lower: bool = False) -> List[str]:
    if isinstance(value, str):
        return split_csv(value, lower=lower)
    items = [str(item).strip() for item in value or []]
    if lower:
        items = [item.lower() for item in items]
    return [item for item in items if item]


def _parse_buffer_config(data: dict) -> BufferConfig:
    """Parse buffer section from config dict"""
    buffer_data = data.get("buffer", {})
    defaults = BufferConfig()
    return BufferConfig(
        max_messages=int(buffer_data.get("max_messages", defaults.max_messages)),
        evaluation_threshold=int(buffer_data.get("evaluation_threshold", defaults.evaluation_threshold)),
        conversation_gap_minutes=float(buffer_data.get("conversation_gap_minutes", defaults.conversation_gap_minutes)),
        min_messages_for_chunk=int(buffer_data.get("min_messages_for_chunk", defaults.min_messages_for_chunk)),
        evaluation_interval_seconds=float(
            buffer_data.get("evaluation_interval_seconds", defaults.evaluation_interval_seconds)
        ),
    )


def _parse_privacy_config(data: dict) -> PrivacyConfig:
    """Parse privacy section from config dict"""
    privacy_data = data.get("privacy", {})
    defaults = PrivacyConfig()
    keywords = privacy_data.get("blocked_keywords")
    return PrivacyConfig(
        blocked_keywords=_as_list(keywords, lower=True) if keywords is not None else defaults.blocked_keywords,
        off_record_marker=privacy_data.get("off_record_marker", defaults.off_record_marker),
        min_text_length=int(privacy_data.get("min_text_length", defaults.min_text_length)),
        max_code_fraction=float(privacy_data.get("max_code_fraction", defaults.max_code_fraction)),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        signing_secret=slack_data.get("signing_secret", ""),
        bot_token=slack_data.get("bot_token", ""),
        watch_channel_ids=_as_list(slack_data.get("watch_channel_ids", [])),
        workspace_domain=slack_data.get("workspace_domain", ""),
        port=int(slack_data.get("port", 8080)),
    )


def _parse_forwarder_config(data: dict) -> ForwarderConfig:
    """Parse forwarder section from config dict"""
    forwarder_data = data.get("forwarder", {})
    return ForwarderConfig(
        url=forwarder_data.get("url", ""),
        timeout_seconds=float(forwarder_data.get("timeout_seconds", 10.0)),
    )


def load_config() -> ThreadlineConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.threadline/config.json)
    3. Default values
    """
    config = ThreadlineConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH, encoding="utf-8") as f:
                data = json.load(f)

            config.buffer = _parse_buffer_config(data)
            config.privacy = _parse_privacy_config(data)
            config.slack = _parse_slack_config(data)
            config.forwarder = _parse_forwarder_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("MAX_BUFFER_SIZE"):
        config.buffer.max_messages = int(os.getenv("MAX_BUFFER_SIZE"))
    if os.getenv("EVALUATION_THRESHOLD"):
        config.buffer.evaluation_threshold = int(os.getenv("EVALUATION_THRESHOLD"))
    if os.getenv("CONVERSATION_GAP_MINUTES"):
        config.buffer.conversation_gap_minutes = float(os.getenv("CONVERSATION_GAP_MINUTES"))
    if os.getenv("MIN_MESSAGES_FOR_CHUNK"):
        config.buffer.min_messages_for_chunk = int(os.getenv("MIN_MESSAGES_FOR_CHUNK"))
    if os.getenv("EVALUATION_INTERVAL_SECONDS"):
        config.buffer.evaluation_interval_seconds = float(os.getenv("EVALUATION_INTERVAL_SECONDS"))

    if os.getenv("BLOCKED_KEYWORDS") is not None:
        config.privacy.blocked_keywords = split_csv(os.getenv("BLOCKED_KEYWORDS"), lower=True)
    if os.getenv("OFF_RECORD_MARKER"):
        config.privacy.off_record_marker = os.getenv("OFF_RECORD_MARKER")

    if os.getenv("WATCH_CHANNEL_IDS"):
        config.slack.watch_channel_ids = split_csv(os.getenv("WATCH_CHANNEL_IDS"))
    if os.getenv("SLACK_WORKSPACE_DOMAIN"):
        config.slack.workspace_domain = os.getenv("SLACK_WORKSPACE_DOMAIN")
    if os.getenv("THREADLINE_PORT"):
        config.slack.port = int(os.getenv("THREADLINE_PORT"))
    if os.getenv("CHUNK_FORWARD_URL"):
        config.forwarder.url = os.getenv("CHUNK_FORWARD_URL")

    # Secrets: track which ones came from the environment
    _env_secret_map = {
        "SLACK_SIGNING_SECRET": "signing_secret",
        "SLACK_BOT_TOKEN": "bot_token",
    }
    for env_var, attr in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.slack, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: ThreadlineConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    slack_section = {
        "signing_secret": config.slack.signing_secret,
        "bot_token": config.slack.bot_token,
        "watch_channel_ids": list(config.slack.watch_channel_ids),
        "workspace_domain": config.slack.workspace_domain,
        "port": config.slack.port,
    }
    for key in ("signing_secret", "bot_token"):
        if key in env_sourced:
            slack_section[key] = ""

    data = {
        "buffer": {
            "max_messages": config.buffer.max_messages,
            "evaluation_threshold": config.buffer.evaluation_threshold,
            "conversation_gap_minutes": config.buffer.conversation_gap_minutes,
            "min_messages_for_chunk": config.buffer.min_messages_for_chunk,
            "evaluation_interval_seconds": config.buffer.evaluation_interval_seconds,
        },
        "privacy": {
            "blocked_keywords": list(config.privacy.blocked_keywords),
            "off_record_marker": config.privacy.off_record_marker,
            "min_text_length": config.privacy.min_text_length,
            "max_code_fraction": config.privacy.max_code_fraction,
        },
        "slack": slack_section,
        "forwarder": {
            "url": config.forwarder.url,
            "timeout_seconds": config.forwarder.timeout_seconds,
        },
    }

    with open(CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
