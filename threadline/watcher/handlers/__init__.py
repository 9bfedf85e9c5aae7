"""
Transport Handlers

Each handler converts transport-specific events to the common Message format.

Available Handlers:
- SlackHandler: Slack Events API webhooks
"""

from .base import BaseHandler
from .slack import SlackHandler

__all__ = [
    "BaseHandler",
    "SlackHandler",
]
