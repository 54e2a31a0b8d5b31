"""
Wiring for the unified inbox: storage, token manager, channel clients and the
services built on them, with explicit startup and shutdown.
"""

from dataclasses import dataclass

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger, setup_logging
from unified_inbox.models.domain.message_domain import ChannelType
from unified_inbox.services.auth_token_service import AuthTokenManager
from unified_inbox.services.channels.base import BaseChannelClient, ChannelClient
from unified_inbox.services.channels.factory import ChannelClientFactory
from unified_inbox.services.inbox.aggregator import ChannelAggregator
from unified_inbox.services.inbox.identity_resolver import UserMappingService
from unified_inbox.services.inbox.related_messages import RelatedMessageGatherer
from unified_inbox.services.storage.repository import (
    RedisStorageRepository,
    StorageRepository,
    create_storage_repository,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class UnifiedInbox:
    storage: StorageRepository
    token_manager: AuthTokenManager
    clients: dict[ChannelType, ChannelClient]
    mapping_service: UserMappingService
    aggregator: ChannelAggregator
    related_messages: RelatedMessageGatherer

    def breaker_health(self) -> dict[str, dict]:
        return {
            channel.value: client.breaker.get_health_status()
            for channel, client in self.clients.items()
            if isinstance(client, BaseChannelClient)
        }

    async def close(self) -> None:
        """Release HTTP clients and the storage connection."""
        for channel, client in self.clients.items():
            if isinstance(client, BaseChannelClient):
                try:
                    await client.close()
                except Exception as e:
                    logger.error("Error closing channel client", channel=channel, error=str(e))

        if isinstance(self.storage, RedisStorageRepository):
            await self.storage.close()

        logger.info("Unified inbox shut down")


def build_unified_inbox(storage: StorageRepository | None = None) -> UnifiedInbox:
    """Create every collaborator once; each channel client gets its own breaker."""
    setup_logging(log_level=settings.LOG_LEVEL)

    storage = storage or create_storage_repository()
    token_manager = AuthTokenManager(storage)
    clients = ChannelClientFactory(token_manager, settings).create_all_clients()
    mapping_service = UserMappingService(storage)

    inbox = UnifiedInbox(
        storage=storage,
        token_manager=token_manager,
        clients=clients,
        mapping_service=mapping_service,
        aggregator=ChannelAggregator(clients.values(), mapping_service),
        related_messages=RelatedMessageGatherer(clients, mapping_service),
    )

    logger.info(
        "Unified inbox initialized",
        environment=settings.environment,
        channels=[channel.value for channel in clients],
    )
    return inbox
