"""
Domain models for the unified inbox.
"""

from .auth_domain import AuthToken
from .inbox_domain import AggregationResult, ChannelResult
from .message_domain import (
    ApiError,
    Attachment,
    AuthResult,
    ChannelInfo,
    ChannelType,
    GetMessagesParams,
    GetMessagesResult,
    Message,
    Priority,
    SendMessageParams,
    SendMessageResult,
)
from .user_mapping_domain import (
    ChannelIdentities,
    ChannelIdentity,
    DiscordIdentity,
    GmailIdentity,
    LineIdentity,
    ResolvedMessage,
    UserMapping,
    UserMappingRequest,
)

__all__ = [
    "AggregationResult",
    "ApiError",
    "Attachment",
    "AuthResult",
    "AuthToken",
    "ChannelIdentities",
    "ChannelIdentity",
    "ChannelInfo",
    "ChannelResult",
    "ChannelType",
    "DiscordIdentity",
    "GetMessagesParams",
    "GetMessagesResult",
    "GmailIdentity",
    "LineIdentity",
    "Message",
    "Priority",
    "ResolvedMessage",
    "SendMessageParams",
    "SendMessageResult",
    "UserMapping",
    "UserMappingRequest",
]
