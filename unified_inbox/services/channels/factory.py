"""
Channel client factory.
Builds one client per backend; each client constructs and owns its own breaker.
"""

from unified_inbox.config import Settings
from unified_inbox.models.domain.message_domain import ChannelType
from unified_inbox.services.auth_token_service import AuthTokenManager
from unified_inbox.services.channels.base import ChannelClient
from unified_inbox.services.channels.discord_client import DiscordClient
from unified_inbox.services.channels.gmail_client import GmailClient
from unified_inbox.services.channels.line_client import LineClient

_CLIENT_CLASSES = {
    ChannelType.GMAIL: GmailClient,
    ChannelType.DISCORD: DiscordClient,
    ChannelType.LINE: LineClient,
}


class ChannelClientFactory:
    def __init__(self, token_manager: AuthTokenManager, app_settings: Settings | None = None):
        self.token_manager = token_manager
        self.settings = app_settings

    def create_client(self, channel: ChannelType) -> ChannelClient:
        client_class = _CLIENT_CLASSES.get(channel)
        if client_class is None:
            raise ValueError(f"Unsupported channel type: {channel}")
        return client_class(self.token_manager, app_settings=self.settings)

    def create_all_clients(self) -> dict[ChannelType, ChannelClient]:
        """One client per channel, in registration order (gmail, discord, line)."""
        return {channel: self.create_client(channel) for channel in _CLIENT_CLASSES}
