"""
LINE channel client.
Messages are received by the proxy server's webhook and read back from it;
replies are pushed through the proxy with the channel access token.
"""

from typing import Any

from unified_inbox.models.domain.auth_domain import AuthToken
from unified_inbox.models.domain.message_domain import ChannelType, SendMessageParams
from unified_inbox.services.channels.proxy_client import ProxyChannelClient

LINE_MESSAGE_ID = "line-message-sent"


class LineClient(ProxyChannelClient):
    """The stored token is a LINE channel access token."""

    channel = ChannelType.LINE
    display_name = "LINE"

    async def _send(self, params: SendMessageParams) -> str:
        token = await self._get_valid_token()
        payload = {
            "to": params.to,
            "messages": [{"type": "text", "text": params.content}],
        }

        data = await self._request(
            "POST",
            f"{self.proxy_url}/message/push",
            "push_message",
            headers=self._get_auth_headers(token),
            json=payload,
        )
        sent = data.get("sentMessages") or []
        return str(sent[0].get("id")) if sent and sent[0].get("id") else LINE_MESSAGE_ID

    async def _validate_credentials(self, credentials: dict[str, Any]) -> AuthToken:
        channel_access_token = credentials.get("channel_access_token")
        if not channel_access_token:
            raise ValueError("LINE Channel Access Token is required")

        await self._request(
            "GET",
            f"{self.settings.LINE_API_BASE_URL.rstrip('/')}/bot/info",
            "get_bot_info",
            headers=self._get_auth_headers(channel_access_token),
        )
        return self._long_lived_token(channel_access_token)
