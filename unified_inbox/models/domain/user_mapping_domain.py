# unified_inbox/models/domain/user_mapping_domain.py
"""
User Mapping Domain Models
Persisted "this sender is actually person X" records and the messages resolved against them.
Each channel has its own identity shape; they are separate typed models, never a loose dict.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from unified_inbox.models.domain.message_domain import ChannelType, Message, Priority


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GmailIdentity(BaseModel):
    """Address-style identity: matched by containment in the sender field."""

    email: str
    user_id: str
    display_name: str | None = None


class DiscordIdentity(BaseModel):
    """Username identity: matched by containment in the sender field."""

    username: str
    user_id: str
    discriminator: str | None = None
    guild_id: str | None = None
    display_name: str | None = None


class LineIdentity(BaseModel):
    """Opaque-id identity: matched by exact equality with the sender field."""

    user_id: str
    display_name: str
    picture_url: str | None = None


ChannelIdentity = GmailIdentity | DiscordIdentity | LineIdentity


class ChannelIdentities(BaseModel):
    """Per-channel identity sub-records of one person."""

    gmail: GmailIdentity | None = None
    discord: DiscordIdentity | None = None
    line: LineIdentity | None = None

    def get(self, channel: ChannelType) -> ChannelIdentity | None:
        return getattr(self, channel.value)

    def items(self) -> list[tuple[ChannelType, ChannelIdentity]]:
        """Linked channels in declaration order (gmail, discord, line)."""
        linked = []
        for channel in ChannelType:
            identity = self.get(channel)
            if identity is not None:
                linked.append((channel, identity))
        return linked


class UserMapping(BaseModel):
    """Domain model for a cross-channel person record."""

    id: str
    name: str
    channels: ChannelIdentities
    avatar: str | None = None
    priority: Priority = Priority.NORMAL
    tags: list[str] = Field(default_factory=list)
    last_activity: datetime = Field(default_factory=_utcnow)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def linked_channels(self) -> list[ChannelType]:
        return [channel for channel, _ in self.channels.items()]


class UserMappingRequest(BaseModel):
    """Input for creating a mapping."""

    name: str
    channels: ChannelIdentities
    avatar: str | None = None
    priority: Priority = Priority.NORMAL
    tags: list[str] = Field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ResolvedMessage:
    """A message with its looked-up owner. Resolution never creates or edits a mapping."""

    message: Message
    resolved_user: UserMapping | None
    priority: Priority = Priority.NORMAL
    related_messages: tuple[Message, ...] = ()

    @property
    def channel(self) -> ChannelType:
        return self.message.channel

    @property
    def is_resolved(self) -> bool:
        return self.resolved_user is not None
