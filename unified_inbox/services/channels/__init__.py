"""
Channel clients for the unified inbox.
"""

from .base import BaseChannelClient, ChannelApiError, ChannelAuthError, ChannelClient
from .discord_client import DiscordClient
from .factory import ChannelClientFactory
from .gmail_client import GmailClient
from .line_client import LineClient

__all__ = [
    "BaseChannelClient",
    "ChannelApiError",
    "ChannelAuthError",
    "ChannelClient",
    "ChannelClientFactory",
    "DiscordClient",
    "GmailClient",
    "LineClient",
]
