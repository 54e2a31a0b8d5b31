from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Channel endpoints
    PROXY_SERVER_URL: str = "http://localhost:3000"
    PROXY_AUTH_ENABLED: bool = True
    GMAIL_API_BASE_URL: str = "https://gmail.googleapis.com/gmail/v1"
    LINE_API_BASE_URL: str = "https://api.line.me/v2"
    REQUEST_TIMEOUT: float = 30.0

    # Storage settings
    REDIS_URL: str | None = None
    ENCRYPTION_KEY: str | None = None

    # =================================================================
    # CIRCUIT BREAKER SETTINGS - one breaker per channel client
    # =================================================================
    BREAKER_TIMEOUT: float = 10.0  # per-call timeout, seconds
    BREAKER_ERROR_THRESHOLD_PERCENTAGE: float = 50.0
    BREAKER_RESET_TIMEOUT: float = 30.0  # seconds spent OPEN before a probe
    BREAKER_VOLUME_THRESHOLD: int = 5
    BREAKER_ROLLING_WINDOW: float = 10.0  # seconds of outcomes kept for thresholds

    # =================================================================
    # INBOX SETTINGS
    # =================================================================
    INBOX_FETCH_LIMIT_PER_CHANNEL: int = 2
    RELATED_MESSAGES_LIMIT: int = 5
    RELATED_LOOKBACK_DAYS: int = 7

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def proxy_url(self, channel: str) -> str:
        """Base URL of the proxy server routes for one channel."""
        return f"{self.PROXY_SERVER_URL.rstrip('/')}/api/{channel}"

    def get_breaker_config(self) -> dict:
        """
        Get circuit breaker configuration.
        Development gets a shorter reset timeout so a flapping local proxy recovers quickly.
        """
        config = {
            "timeout": self.BREAKER_TIMEOUT,
            "error_threshold_percentage": self.BREAKER_ERROR_THRESHOLD_PERCENTAGE,
            "reset_timeout": self.BREAKER_RESET_TIMEOUT,
            "volume_threshold": self.BREAKER_VOLUME_THRESHOLD,
            "rolling_window": self.BREAKER_ROLLING_WINDOW,
        }

        if self.environment == "development":
            config["reset_timeout"] = min(self.BREAKER_RESET_TIMEOUT, 10.0)

        return config


settings = Settings()
