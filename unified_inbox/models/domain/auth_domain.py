# unified_inbox/models/domain/auth_domain.py
"""
Channel auth token domain model.
One token per channel: an OAuth access token (Gmail), a webhook URL (Discord)
or a channel access token (LINE).
"""

from datetime import UTC, datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field


class AuthToken(BaseModel):
    """Domain model for channel credentials (decrypted)."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: list[str] = Field(default_factory=list)
    token_type: Literal["Bearer", "OAuth"] = "Bearer"

    def is_expired(self) -> bool:
        """Check if access token is expired."""
        if not self.expires_at:
            return False
        return datetime.now(UTC) >= self.expires_at

    def needs_refresh(self, buffer_minutes: int = 5) -> bool:
        """Check if token should be refreshed soon."""
        if not self.expires_at:
            return False
        buffer_time = datetime.now(UTC) + timedelta(minutes=buffer_minutes)
        return buffer_time >= self.expires_at
