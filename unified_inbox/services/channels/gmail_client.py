"""
Gmail channel client.
Lists messages over the Gmail REST API, fetches details concurrently and
converts them to unified Message objects.
"""

import asyncio
import base64
from datetime import UTC, datetime, timedelta
from email.mime.text import MIMEText
from email.utils import parsedate_to_datetime
from typing import Any

from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.infrastructure.resilience.circuit_breaker import CircuitOpenError, UpstreamError
from unified_inbox.models.domain.auth_domain import AuthToken
from unified_inbox.models.domain.message_domain import (
    ChannelType,
    GetMessagesParams,
    GetMessagesResult,
    Message,
    SendMessageParams,
)
from unified_inbox.services.channels.base import BaseChannelClient

logger = get_logger(__name__)

GMAIL_USER_ID = "me"
DEFAULT_MAX_RESULTS = 50
MAX_RESULTS_LIMIT = 500  # Gmail API limit
DEFAULT_SUBJECT = "Reply from Unified Inbox"
NO_CONTENT = "No content available"


def _decode_base64_data(data: str) -> str:
    """Decode base64 URL-safe encoded data."""
    try:
        decoded_bytes = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
        return decoded_bytes.decode("utf-8", errors="ignore")
    except (ValueError, TypeError):
        return ""


def _extract_body(payload: dict) -> str:
    """First text/plain body found in the payload tree."""
    body_data = payload.get("body", {}).get("data")
    if body_data and payload.get("mimeType", "text/plain") == "text/plain":
        return _decode_base64_data(body_data)

    for part in payload.get("parts", []):
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain" and part.get("body", {}).get("data"):
            return _decode_base64_data(part["body"]["data"])
        if mime_type.startswith("multipart/"):
            nested = _extract_body(part)
            if nested:
                return nested

    if body_data:
        return _decode_base64_data(body_data)
    return ""


def _parse_timestamp(data: dict, headers: dict[str, str]) -> datetime:
    internal_date = data.get("internalDate")
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=UTC)
        except (ValueError, OSError):
            pass

    date_header = headers.get("date")
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        except (TypeError, ValueError):
            pass

    return datetime.fromtimestamp(0, tz=UTC)


def parse_gmail_message(data: dict[str, Any]) -> Message:
    """Convert a Gmail API message resource (format=full) into a Message."""
    payload = data.get("payload", {})
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
    label_ids = data.get("labelIds", [])

    return Message(
        id=data["id"],
        sender=headers.get("from", ""),
        recipient=headers.get("to", GMAIL_USER_ID),
        content=_extract_body(payload) or data.get("snippet") or NO_CONTENT,
        timestamp=_parse_timestamp(data, headers),
        is_unread="UNREAD" in label_ids,
        channel=ChannelType.GMAIL,
        thread_id=data.get("threadId"),
        raw=data,
    )


class GmailClient(BaseChannelClient):
    """Gmail REST API client. The stored token is an OAuth access token."""

    channel = ChannelType.GMAIL
    display_name = "Gmail"

    @property
    def base_url(self) -> str:
        return f"{self.settings.GMAIL_API_BASE_URL.rstrip('/')}/users/{GMAIL_USER_ID}"

    async def get_messages(self, params: GetMessagesParams) -> GetMessagesResult:
        """
        List messages and fetch their details.

        Raises:
            ChannelAuthError: No valid token
            CircuitOpenError / UpstreamError: The list call failed
        """
        token = await self._get_valid_token()
        headers = self._get_auth_headers(token)

        query_params: dict[str, Any] = {
            "maxResults": min(params.limit or DEFAULT_MAX_RESULTS, MAX_RESULTS_LIMIT),
        }
        if params.unread_only:
            query_params["labelIds"] = "UNREAD"
        if params.since:
            query_params["q"] = f"after:{int(params.since.timestamp())}"

        logger.info("Listing Gmail messages", **query_params)

        data = await self._request(
            "GET", f"{self.base_url}/messages", "list_messages", headers=headers, params=query_params
        )
        message_ids = [msg["id"] for msg in data.get("messages", [])]

        details = await asyncio.gather(
            *(self._get_message_detail(message_id, headers) for message_id in message_ids)
        )
        messages = [message for message in details if message is not None]

        logger.info(
            "Gmail messages listed", listed=len(message_ids), message_count=len(messages)
        )
        return GetMessagesResult(
            messages=messages,
            has_more=bool(data.get("nextPageToken")),
            next_token=data.get("nextPageToken"),
        )

    async def _get_message_detail(self, message_id: str, headers: dict) -> Message | None:
        """Fetch one message; a failed detail is skipped, not fatal to the listing."""
        try:
            data = await self._request(
                "GET",
                f"{self.base_url}/messages/{message_id}",
                "get_message",
                headers=headers,
                params={"format": "full"},
            )
            return parse_gmail_message(data)
        except (UpstreamError, CircuitOpenError, KeyError) as e:
            logger.warning("Failed to get Gmail message", message_id=message_id, error=str(e))
            return None

    async def _send(self, params: SendMessageParams) -> str:
        token = await self._get_valid_token()

        msg = MIMEText(params.content, "plain", "utf-8")
        msg["To"] = params.to
        msg["Subject"] = params.subject or DEFAULT_SUBJECT
        if params.reply_to:
            msg["In-Reply-To"] = params.reply_to
            msg["References"] = params.reply_to

        raw_message = base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8").rstrip("=")

        data = await self._request(
            "POST",
            f"{self.base_url}/messages/send",
            "send_message",
            headers=self._get_auth_headers(token),
            json={"raw": raw_message},
        )
        return data.get("id", "")

    async def _validate_credentials(self, credentials: dict[str, Any]) -> AuthToken:
        access_token = credentials.get("access_token")
        if not access_token:
            raise ValueError("Gmail access token is required")

        await self._request(
            "GET",
            f"{self.base_url}/profile",
            "get_profile",
            headers=self._get_auth_headers(access_token),
        )

        expires_in = credentials.get("expires_in")
        scope = credentials.get("scope") or ""
        return AuthToken(
            access_token=access_token,
            refresh_token=credentials.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=int(expires_in)) if expires_in else None,
            scope=scope.split() if isinstance(scope, str) else list(scope),
        )
