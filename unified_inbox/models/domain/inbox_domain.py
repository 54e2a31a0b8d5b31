# unified_inbox/models/domain/inbox_domain.py
"""
Unified inbox domain models.
Created fresh by every aggregation cycle and returned to the caller; never persisted.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from unified_inbox.models.domain.message_domain import ApiError, ChannelType
from unified_inbox.models.domain.user_mapping_domain import ResolvedMessage


@dataclass(slots=True)
class ChannelResult:
    """Outcome of one channel within one aggregation cycle."""

    channel: ChannelType
    success: bool
    message_count: int = 0
    error: ApiError | None = None
    fetch_time_ms: float = 0.0


@dataclass(slots=True)
class AggregationResult:
    """
    Result of ChannelAggregator.fetch_all().

    ``success`` is always True: per-channel failures live in ``channel_results``.
    """

    success: bool
    messages: list[ResolvedMessage]
    channel_results: dict[ChannelType, ChannelResult]
    total_unread: int
    last_fetch: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def failed_channels(self) -> list[ChannelType]:
        return [channel for channel, result in self.channel_results.items() if not result.success]

    @property
    def all_channels_failed(self) -> bool:
        return bool(self.channel_results) and len(self.failed_channels) == len(self.channel_results)
