"""
Discord channel client.
Reads messages cached by the proxy server's Discord bot and sends replies
through the stored webhook URL.
"""

from typing import Any

from unified_inbox.models.domain.auth_domain import AuthToken
from unified_inbox.models.domain.message_domain import ChannelType, SendMessageParams
from unified_inbox.services.channels.base import ChannelAuthError
from unified_inbox.services.channels.proxy_client import ProxyChannelClient

WEBHOOK_USERNAME = "Unified Inbox"
WEBHOOK_MESSAGE_ID = "discord-webhook-sent"


class DiscordClient(ProxyChannelClient):
    """The stored token is the webhook URL; message reads need no credentials."""

    channel = ChannelType.DISCORD
    display_name = "Discord"
    proxy_requires_auth = False

    async def _send(self, params: SendMessageParams) -> str:
        webhook_url = await self._get_valid_token()
        if not webhook_url.startswith("http"):
            raise ChannelAuthError("Stored Discord webhook URL is invalid")

        data = await self._request(
            "POST",
            webhook_url,
            "send_webhook",
            params={"wait": "true"},
            json={"content": params.content, "username": WEBHOOK_USERNAME},
        )
        return str(data.get("id") or WEBHOOK_MESSAGE_ID)

    async def _validate_credentials(self, credentials: dict[str, Any]) -> AuthToken:
        webhook_url = credentials.get("webhook_url")
        if not webhook_url:
            raise ValueError("Discord Webhook URL is required")

        await self._request("GET", webhook_url, "validate_webhook")
        return self._long_lived_token(webhook_url)
