# unified_inbox/models/domain/message_domain.py
"""
Message Domain Models
Unified message shapes shared by every channel client, the aggregator and the resolver.
Channel clients build these from upstream payloads; nothing mutates them afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Backend tag carried by every message."""

    GMAIL = "gmail"
    DISCORD = "discord"
    LINE = "line"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(slots=True, frozen=True)
class ApiError:
    """Error descriptor surfaced as data instead of an exception."""

    code: str
    message: str


@dataclass(slots=True, frozen=True)
class Attachment:
    id: str
    name: str
    type: str
    size: int
    url: str | None = None


@dataclass(slots=True, frozen=True)
class Message:
    """Unified message produced by a channel client.

    ``sender`` and ``recipient`` hold the upstream ``from``/``to`` values verbatim,
    e.g. ``"Alice <alice@co.com>"`` for email or an opaque user id for LINE.
    """

    id: str
    sender: str
    recipient: str
    content: str
    timestamp: datetime
    is_unread: bool
    channel: ChannelType
    thread_id: str | None = None
    reply_to_id: str | None = None
    attachments: tuple[Attachment, ...] = ()
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True, frozen=True)
class ChannelInfo:
    type: ChannelType
    name: str
    is_connected: bool


@dataclass(slots=True)
class GetMessagesParams:
    limit: int | None = None
    unread_only: bool = False
    since: datetime | None = None
    thread_id: str | None = None


@dataclass(slots=True)
class GetMessagesResult:
    messages: list[Message]
    has_more: bool = False
    next_token: str | None = None


@dataclass(slots=True)
class SendMessageParams:
    to: str
    content: str
    reply_to: str | None = None
    subject: str | None = None  # email only


@dataclass(slots=True)
class SendMessageResult:
    success: bool
    message_id: str | None = None
    error: ApiError | None = None


@dataclass(slots=True)
class AuthResult:
    success: bool
    token: str | None = None
    expires_at: datetime | None = None
    error: ApiError | None = None
