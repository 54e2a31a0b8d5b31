"""
Cross-channel identity resolution.

``resolve()`` attaches a persisted UserMapping to each raw message. It is pure:
no I/O, no clock, no mutation of its inputs. Matching uses one typed predicate
per channel (see ``SENDER_MATCHERS``), and the first mapping in stored order
whose predicate matches wins; scanning stops there.

UserMappingService wraps ``resolve()`` with the storage collaborator and owns
mapping creation.
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.models.domain.message_domain import ChannelType, Message, Priority
from unified_inbox.models.domain.user_mapping_domain import (
    ChannelIdentity,
    DiscordIdentity,
    GmailIdentity,
    LineIdentity,
    ResolvedMessage,
    UserMapping,
    UserMappingRequest,
)
from unified_inbox.services.storage.repository import StorageKeys, StorageRepository

logger = get_logger(__name__)


def _gmail_matches(sender: str, identity: GmailIdentity) -> bool:
    # "Alice <alice@co.com>" matches a stored "alice@co.com"
    return bool(identity.email) and identity.email in sender


def _discord_matches(sender: str, identity: DiscordIdentity) -> bool:
    return bool(identity.username) and identity.username in sender


def _line_matches(sender: str, identity: LineIdentity) -> bool:
    return sender == identity.user_id


SENDER_MATCHERS: dict[ChannelType, tuple[type, Callable[[str, ChannelIdentity], bool]]] = {
    ChannelType.GMAIL: (GmailIdentity, _gmail_matches),
    ChannelType.DISCORD: (DiscordIdentity, _discord_matches),
    ChannelType.LINE: (LineIdentity, _line_matches),
}


def sender_matches(channel: ChannelType, sender: str, identity: ChannelIdentity | None) -> bool:
    """True when ``sender`` on ``channel`` belongs to the stored ``identity``."""
    if identity is None:
        return False

    identity_type, matcher = SENDER_MATCHERS[channel]
    if not isinstance(identity, identity_type):
        return False
    return matcher(sender, identity)


def find_mapping(message: Message, mappings: Sequence[UserMapping]) -> UserMapping | None:
    """First mapping, in list order, whose identity on the message's channel matches."""
    for mapping in mappings:
        if sender_matches(message.channel, message.sender, mapping.channels.get(message.channel)):
            return mapping
    return None


def resolve(mappings: Sequence[UserMapping], messages: Sequence[Message]) -> list[ResolvedMessage]:
    """
    Resolve every message against the mapping list.

    Args:
        mappings: Stored mappings, in stored order
        messages: Raw messages, in any order

    Returns:
        list[ResolvedMessage]: Same order as ``messages``; unresolved messages
        carry ``resolved_user=None`` and NORMAL priority
    """
    resolved = []
    for message in messages:
        mapping = find_mapping(message, mappings)
        resolved.append(
            ResolvedMessage(
                message=message,
                resolved_user=mapping,
                priority=mapping.priority if mapping else Priority.NORMAL,
            )
        )
    return resolved


class UserMappingService:
    """Storage-backed access to user mappings."""

    def __init__(self, storage: StorageRepository):
        self._storage = storage

    async def get_all_mappings(self) -> list[UserMapping]:
        stored = await self._storage.get(StorageKeys.USER_MAPPINGS) or []
        return [UserMapping.model_validate(item) for item in stored]

    async def get_mapping(self, user_id: str) -> UserMapping | None:
        mappings = await self.get_all_mappings()
        mapping = next((m for m in mappings if m.id == user_id), None)
        if mapping is None:
            logger.info("User mapping not found", user_id=user_id, mapping_count=len(mappings))
        return mapping

    async def create_mapping(self, request: UserMappingRequest) -> UserMapping:
        """Append a new mapping. Single writer assumed; concurrent creates can lose one."""
        now = datetime.now(UTC)
        mapping = UserMapping(
            id=f"user-{uuid.uuid4().hex}",
            name=request.name,
            channels=request.channels,
            avatar=request.avatar,
            priority=request.priority,
            tags=list(request.tags),
            last_activity=now,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

        mappings = await self.get_all_mappings()
        mappings.append(mapping)
        await self._storage.save(
            StorageKeys.USER_MAPPINGS, [m.model_dump(mode="json") for m in mappings]
        )

        logger.info(
            "User mapping created",
            user_id=mapping.id,
            channels=[channel.value for channel in mapping.linked_channels()],
        )
        return mapping

    async def resolve_user_mappings(self, messages: Sequence[Message]) -> list[ResolvedMessage]:
        """Load mappings once and resolve ``messages`` against them."""
        mappings = await self.get_all_mappings()
        resolved = resolve(mappings, messages)
        logger.debug(
            "Messages resolved",
            message_count=len(resolved),
            resolved_count=sum(1 for r in resolved if r.is_resolved),
            mapping_count=len(mappings),
        )
        return resolved
