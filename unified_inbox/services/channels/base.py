"""
Channel client capability and the shared HTTP/breaker plumbing.

Every backend (Gmail, Discord, LINE) implements ChannelClient. BaseChannelClient
owns one CircuitBreaker and one httpx.AsyncClient per instance; every upstream
request goes through ``_request`` and therefore through that breaker.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from unified_inbox.config import Settings, settings
from unified_inbox.infrastructure.observability.logging import get_logger
from unified_inbox.infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    UpstreamError,
)
from unified_inbox.models.domain.auth_domain import AuthToken
from unified_inbox.models.domain.message_domain import (
    ApiError,
    AuthResult,
    ChannelInfo,
    ChannelType,
    GetMessagesParams,
    GetMessagesResult,
    SendMessageParams,
    SendMessageResult,
)
from unified_inbox.services.auth_token_service import AuthTokenManager

logger = get_logger(__name__)

# Long-lived credentials (webhook URLs, channel access tokens) are stored for a year
LONG_LIVED_TOKEN_DAYS = 365


class ChannelApiError(UpstreamError):
    """Upstream API call failed (non-2xx status or transport error)."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class ChannelAuthError(Exception):
    """No usable credentials for the channel."""


class ChannelClient(ABC):
    """Capability set of one messaging backend."""

    channel: ChannelType

    @abstractmethod
    async def is_authenticated(self) -> bool: ...

    @abstractmethod
    async def get_messages(self, params: GetMessagesParams) -> GetMessagesResult: ...

    @abstractmethod
    async def send_message(self, params: SendMessageParams) -> SendMessageResult: ...

    @abstractmethod
    async def authenticate(self, credentials: dict[str, Any]) -> AuthResult: ...

    @abstractmethod
    def channel_info(self) -> ChannelInfo: ...


class BaseChannelClient(ChannelClient):
    """
    Shared implementation for HTTP-backed channel clients.

    Subclasses set ``channel`` and ``display_name`` and implement the
    upstream-specific ``get_messages``, ``_send`` and ``_validate_credentials``.
    """

    display_name: str = ""

    def __init__(
        self,
        token_manager: AuthTokenManager,
        *,
        breaker: CircuitBreaker | None = None,
        http_client: httpx.AsyncClient | None = None,
        app_settings: Settings | None = None,
    ):
        self.token_manager = token_manager
        self.settings = app_settings or settings
        self.breaker = breaker or CircuitBreaker(self.channel.value)
        self._client = http_client or self._create_client()
        self._connected = False

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for this channel."""
        timeout = httpx.Timeout(self.settings.REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def channel_info(self) -> ChannelInfo:
        return ChannelInfo(type=self.channel, name=self.display_name, is_connected=self._connected)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def is_authenticated(self) -> bool:
        if not self.settings.PROXY_AUTH_ENABLED:
            return True

        token = await self.token_manager.get_token(self.channel)
        if not token:
            logger.debug("No token stored for channel", channel=self.channel)
            return False

        return await self.token_manager.validate_token(self.channel, token)

    async def _get_valid_token(self) -> str:
        """
        Get the channel secret for an upstream call.

        Raises:
            ChannelAuthError: If no valid token is stored
        """
        if not self.settings.PROXY_AUTH_ENABLED:
            return "auth-disabled-token"

        token = await self.token_manager.get_token(self.channel)
        if not token:
            raise ChannelAuthError(f"No authentication token found for {self.channel.value}")

        if not await self.token_manager.validate_token(self.channel, token):
            raise ChannelAuthError(f"Authentication token for {self.channel.value} is expired")

        return token.access_token

    async def authenticate(self, credentials: dict[str, Any]) -> AuthResult:
        """Validate credentials against the upstream and store them on success."""
        try:
            token = await self._validate_credentials(credentials)
            await self.token_manager.save_token(self.channel, token)
            self._connected = True
            logger.info("Channel authenticated", channel=self.channel)
            return AuthResult(success=True, token=token.access_token, expires_at=token.expires_at)
        except (ChannelApiError, ChannelAuthError, CircuitOpenError, ValueError) as e:
            logger.warning("Channel authentication failed", channel=self.channel, error=str(e))
            return AuthResult(
                success=False,
                error=ApiError(code=f"{self.channel.name}_AUTH_ERROR", message=str(e)),
            )

    @abstractmethod
    async def _validate_credentials(self, credentials: dict[str, Any]) -> AuthToken: ...

    def _long_lived_token(self, secret: str) -> AuthToken:
        return AuthToken(
            access_token=secret,
            expires_at=datetime.now(UTC) + timedelta(days=LONG_LIVED_TOKEN_DAYS),
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, params: SendMessageParams) -> SendMessageResult:
        """Send a message. Failures come back as data, never as exceptions."""
        try:
            message_id = await self._send(params)
            logger.info("Message sent", channel=self.channel, message_id=message_id)
            return SendMessageResult(success=True, message_id=message_id)
        except CircuitOpenError as e:
            return SendMessageResult(
                success=False, error=ApiError(code="CIRCUIT_OPEN", message=str(e))
            )
        except (UpstreamError, ChannelAuthError) as e:
            logger.error("Message send failed", channel=self.channel, error=str(e))
            return SendMessageResult(
                success=False,
                error=ApiError(code=f"{self.channel.name}_SEND_ERROR", message=str(e)),
            )

    @abstractmethod
    async def _send(self, params: SendMessageParams) -> str: ...

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> dict:
        """
        Execute one upstream request through the circuit breaker.

        Returns:
            dict: Parsed JSON body ({} for empty bodies)

        Raises:
            CircuitOpenError: Breaker rejected the call
            ChannelApiError: Transport error or non-2xx response
            CircuitTimeoutError: Call exceeded the breaker timeout
        """

        async def call() -> dict:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                logger.error(
                    f"{self.display_name} {operation} request error",
                    channel=self.channel,
                    error=str(e),
                )
                raise ChannelApiError(f"{self.display_name} request failed: {e}") from e
            return self._handle_api_response(response, operation)

        return await self.breaker.execute(call)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate an upstream response.

        Raises:
            ChannelApiError: If the response is not 2xx or not JSON
        """
        logger.debug(
            f"{self.display_name} {operation} response",
            channel=self.channel,
            status_code=response.status_code,
        )

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ChannelApiError(
                    f"Invalid {self.display_name} response format: {e}",
                    status_code=response.status_code,
                ) from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}

        logger.error(
            f"{self.display_name} {operation} failed",
            channel=self.channel,
            status_code=response.status_code,
        )
        raise ChannelApiError(
            f"{self.display_name} API error: {response.status_code} {response.reason_phrase}",
            error_code=str(response.status_code),
            status_code=response.status_code,
            response_data=error_data if isinstance(error_data, dict) else {},
        )
