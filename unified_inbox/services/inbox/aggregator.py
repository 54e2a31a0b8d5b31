"""
Unified inbox aggregation.

Fans out one task per channel client, waits for every task to settle, and merges
the successful channels' unread messages in registration order. A channel that
is unauthenticated, rejected by its breaker or failing upstream only ever shows
up as a failed ChannelResult; fetch_all() itself does not raise for it.
"""

import asyncio
import time
from collections.abc import Iterable

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger, log_aggregation_cycle
from unified_inbox.infrastructure.resilience.circuit_breaker import CircuitOpenError
from unified_inbox.models.domain.inbox_domain import AggregationResult, ChannelResult
from unified_inbox.models.domain.message_domain import (
    ApiError,
    ChannelType,
    GetMessagesParams,
    Message,
)
from unified_inbox.models.domain.user_mapping_domain import ResolvedMessage
from unified_inbox.services.channels.base import ChannelClient
from unified_inbox.services.inbox.identity_resolver import UserMappingService, resolve
from unified_inbox.services.storage.repository import StorageError

logger = get_logger(__name__)

NOT_AUTHENTICATED = "Not authenticated"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class ChannelAggregator:
    """Unified inbox over a fixed set of channel clients."""

    def __init__(
        self,
        clients: Iterable[ChannelClient],
        mapping_service: UserMappingService,
        fetch_limit: int | None = None,
    ):
        self._clients = list(clients)
        channels = [client.channel for client in self._clients]
        if len(set(channels)) != len(channels):
            raise ValueError(f"Duplicate channel clients: {[c.value for c in channels]}")

        self._mapping_service = mapping_service
        self._fetch_limit = fetch_limit or settings.INBOX_FETCH_LIMIT_PER_CHANNEL

    @property
    def channels(self) -> list[ChannelType]:
        return [client.channel for client in self._clients]

    async def fetch_all(self, limit: int | None = None) -> AggregationResult:
        """
        Fetch unread messages from every channel concurrently and resolve identities.

        Returns:
            AggregationResult: one ChannelResult per client; ``success`` is always True
        """
        started = time.perf_counter()
        limit = limit or self._fetch_limit

        outcomes = await asyncio.gather(
            *(self._fetch_channel(client, limit) for client in self._clients),
            return_exceptions=True,
        )

        channel_results: dict[ChannelType, ChannelResult] = {}
        all_messages: list[Message] = []

        for client, outcome in zip(self._clients, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Channel fetch task did not complete",
                    channel=client.channel,
                    error=repr(outcome),
                )
                channel_results[client.channel] = ChannelResult(
                    channel=client.channel,
                    success=False,
                    error=ApiError(code="FETCH_ERROR", message="Fetch failed"),
                )
                continue

            result, messages = outcome
            channel_results[client.channel] = result
            if result.success:
                all_messages.extend(messages)

        resolved = await self._resolve(all_messages)

        log_aggregation_cycle(
            channel_count=len(channel_results),
            failed_channels=[c.value for c, r in channel_results.items() if not r.success],
            total_messages=len(all_messages),
            resolved_count=sum(1 for r in resolved if r.is_resolved),
            duration_ms=_elapsed_ms(started),
        )

        return AggregationResult(
            success=True,
            messages=resolved,
            channel_results=channel_results,
            total_unread=len(all_messages),
        )

    async def _fetch_channel(
        self, client: ChannelClient, limit: int
    ) -> tuple[ChannelResult, list[Message]]:
        started = time.perf_counter()
        channel = client.channel

        try:
            if not await client.is_authenticated():
                logger.info("Channel not authenticated, skipping", channel=channel)
                return (
                    ChannelResult(
                        channel=channel,
                        success=False,
                        error=ApiError(code="NOT_AUTHENTICATED", message=NOT_AUTHENTICATED),
                        fetch_time_ms=_elapsed_ms(started),
                    ),
                    [],
                )

            result = await client.get_messages(GetMessagesParams(unread_only=True, limit=limit))

        except CircuitOpenError as e:
            logger.warning("Channel skipped, circuit open", channel=channel)
            return self._failure(channel, "CIRCUIT_OPEN", str(e), started), []
        except Exception as e:
            logger.warning(
                "Channel fetch failed", channel=channel, error=str(e), error_type=type(e).__name__
            )
            return self._failure(channel, "FETCH_ERROR", str(e), started), []

        return (
            ChannelResult(
                channel=channel,
                success=True,
                message_count=len(result.messages),
                fetch_time_ms=_elapsed_ms(started),
            ),
            result.messages,
        )

    def _failure(self, channel: ChannelType, code: str, message: str, started: float) -> ChannelResult:
        return ChannelResult(
            channel=channel,
            success=False,
            error=ApiError(code=code, message=message),
            fetch_time_ms=_elapsed_ms(started),
        )

    async def _resolve(self, messages: list[Message]) -> list[ResolvedMessage]:
        try:
            return await self._mapping_service.resolve_user_mappings(messages)
        except StorageError as e:
            logger.error("User mappings unavailable, returning unresolved messages", error=str(e))
            return resolve([], messages)
