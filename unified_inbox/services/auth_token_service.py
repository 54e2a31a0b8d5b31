# unified_inbox/services/auth_token_service.py
"""
Channel credential storage.

All channel tokens live in one JSON object under ``auth_tokens`` keyed by channel
tag. Secrets are Fernet-encrypted when ENCRYPTION_KEY is configured.
"""

from typing import Any

from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.models.domain.auth_domain import AuthToken
from unified_inbox.models.domain.message_domain import ChannelType
from unified_inbox.services.infrastructure.encryption_service import (
    decrypt_token,
    encrypt_token,
    encryption_enabled,
)
from unified_inbox.services.storage.repository import StorageKeys, StorageRepository

logger = get_logger(__name__)

_SECRET_FIELDS = ("access_token", "refresh_token")


class AuthTokenManager:
    """Save, load and validate per-channel credentials."""

    def __init__(self, storage: StorageRepository):
        self._storage = storage

    async def _load_all(self) -> dict[str, Any]:
        return await self._storage.get(StorageKeys.AUTH_TOKENS) or {}

    async def save_token(self, channel: ChannelType, token: AuthToken) -> None:
        tokens = await self._load_all()
        tokens[channel.value] = self._serialize(token)
        await self._storage.save(StorageKeys.AUTH_TOKENS, tokens)
        logger.info("Channel token saved", channel=channel, expires_at=str(token.expires_at))

    async def get_token(self, channel: ChannelType) -> AuthToken | None:
        tokens = await self._load_all()
        stored = tokens.get(channel.value)
        if not stored:
            return None
        return self._deserialize(stored)

    async def remove_token(self, channel: ChannelType) -> None:
        tokens = await self._load_all()
        if tokens.pop(channel.value, None) is not None:
            await self._storage.save(StorageKeys.AUTH_TOKENS, tokens)
            logger.info("Channel token removed", channel=channel)

    async def validate_token(self, channel: ChannelType, token: AuthToken) -> bool:
        """A token is valid while it has a secret and has not expired."""
        if not token.access_token:
            return False
        if token.is_expired():
            logger.info("Channel token expired", channel=channel, expires_at=str(token.expires_at))
            return False
        if token.needs_refresh():
            logger.warning(
                "Channel token expires soon", channel=channel, expires_at=str(token.expires_at)
            )
        return True

    def _serialize(self, token: AuthToken) -> dict[str, Any]:
        data = token.model_dump(mode="json")
        if encryption_enabled():
            for field in _SECRET_FIELDS:
                if data.get(field):
                    data[field] = encrypt_token(data[field])
            data["encrypted"] = True
        return data

    def _deserialize(self, data: dict[str, Any]) -> AuthToken:
        data = dict(data)
        if data.pop("encrypted", False):
            for field in _SECRET_FIELDS:
                if data.get(field):
                    data[field] = decrypt_token(data[field])
        return AuthToken.model_validate(data)
