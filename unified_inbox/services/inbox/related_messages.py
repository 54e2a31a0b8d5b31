"""
Related-message gathering for reply context.

Given a resolved user and the message being replied to, collects that person's
recent messages from each of their linked channels, newest first.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.infrastructure.resilience.circuit_breaker import CircuitOpenError, UpstreamError
from unified_inbox.models.domain.message_domain import ChannelType, GetMessagesParams, Message
from unified_inbox.models.domain.user_mapping_domain import ChannelIdentity
from unified_inbox.services.channels.base import ChannelAuthError, ChannelClient
from unified_inbox.services.inbox.identity_resolver import UserMappingService, sender_matches

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RelatedMessageGatherer:
    def __init__(
        self,
        clients: Mapping[ChannelType, ChannelClient],
        mapping_service: UserMappingService,
        limit: int | None = None,
        lookback_days: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._clients = clients
        self._mapping_service = mapping_service
        self._limit = limit or settings.RELATED_MESSAGES_LIMIT
        self._lookback = timedelta(days=lookback_days or settings.RELATED_LOOKBACK_DAYS)
        self._clock = clock

    async def for_user(self, user_id: str, originating_message: Message) -> list[Message]:
        """
        Recent messages from ``user_id`` across their linked channels.

        The message being replied to is left out of its own context: it is
        matched by channel and id and dropped after the merge. A linked channel
        that fails for any reason contributes nothing; the others still count.

        Returns:
            list[Message]: Messages sent by the mapped identities, newest first,
            excluding ``originating_message``; empty when the user is unknown
        """
        mapping = await self._mapping_service.get_mapping(user_id)
        if mapping is None:
            return []

        since = self._clock() - self._lookback
        linked = mapping.channels.items()

        per_channel = await asyncio.gather(
            *(self._fetch_from_channel(channel, identity, since) for channel, identity in linked)
        )

        related = [
            message
            for messages in per_channel
            for message in messages
            if not (
                message.channel == originating_message.channel
                and message.id == originating_message.id
            )
        ]
        related.sort(key=lambda message: message.timestamp, reverse=True)

        logger.info(
            "Related messages gathered",
            user_id=user_id,
            channels=[channel.value for channel, _ in linked],
            message_count=len(related),
        )
        return related

    async def _fetch_from_channel(
        self, channel: ChannelType, identity: ChannelIdentity, since: datetime
    ) -> list[Message]:
        client = self._clients.get(channel)
        if client is None:
            logger.debug("No client for linked channel", channel=channel)
            return []

        try:
            if not await client.is_authenticated():
                logger.debug("Linked channel not authenticated, skipping", channel=channel)
                return []

            result = await client.get_messages(GetMessagesParams(limit=self._limit, since=since))
        except (UpstreamError, CircuitOpenError, ChannelAuthError) as e:
            logger.warning("Related message fetch failed", channel=channel, error=str(e))
            return []
        except Exception as e:
            logger.error(
                "Related message fetch failed unexpectedly",
                channel=channel,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        return [
            message
            for message in result.messages
            if message.timestamp >= since and sender_matches(channel, message.sender, identity)
        ]
