"""
Shared reader for channels whose messages come from the proxy server.

The proxy (Discord bot cache, LINE webhook store) already returns messages in
the unified JSON shape: id, from, to, content, timestamp, isUnread, threadId,
replyToId.
"""

from datetime import UTC, datetime
from typing import Any

from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.models.domain.message_domain import (
    ChannelType,
    GetMessagesParams,
    GetMessagesResult,
    Message,
)
from unified_inbox.services.channels.base import BaseChannelClient, ChannelApiError

logger = get_logger(__name__)

DEFAULT_LIMIT = 50


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # LINE webhook timestamps are epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def parse_proxy_message(data: dict[str, Any], channel: ChannelType) -> Message:
    """
    Convert one proxy message payload into a Message.

    Raises:
        ChannelApiError: If required fields are missing or malformed
    """
    try:
        return Message(
            id=str(data["id"]),
            sender=str(data["from"]),
            recipient=str(data.get("to", "")),
            content=data.get("content") or "",
            timestamp=_parse_timestamp(data["timestamp"]),
            is_unread=bool(data.get("isUnread", True)),
            channel=channel,
            thread_id=data.get("threadId"),
            reply_to_id=data.get("replyToId"),
            raw=data,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ChannelApiError(f"Malformed {channel.value} message payload: {e}") from e


class ProxyChannelClient(BaseChannelClient):
    """Base for clients that read messages through the proxy server."""

    proxy_requires_auth: bool = True

    @property
    def proxy_url(self) -> str:
        return self.settings.proxy_url(self.channel.value)

    async def get_messages(self, params: GetMessagesParams) -> GetMessagesResult:
        headers = {"Accept": "application/json"}
        if self.proxy_requires_auth:
            headers = self._get_auth_headers(await self._get_valid_token())

        limit = params.limit or DEFAULT_LIMIT
        query_params: dict[str, Any] = {"limit": limit}
        if params.since:
            query_params["since"] = params.since.isoformat()

        logger.info(f"Fetching {self.display_name} messages", channel=self.channel, limit=limit)

        data = await self._request(
            "GET", f"{self.proxy_url}/messages", "get_messages", headers=headers, params=query_params
        )

        messages = [parse_proxy_message(item, self.channel) for item in data.get("messages", [])]
        if params.unread_only:
            messages = [message for message in messages if message.is_unread]
        if params.since:
            messages = [message for message in messages if message.timestamp >= params.since]

        has_more = bool(data.get("hasMore")) or len(messages) > limit
        return GetMessagesResult(
            messages=messages[:limit],
            has_more=has_more,
            next_token=data.get("nextToken"),
        )
