import pytest
import structlog

from unified_inbox.config import Settings
from unified_inbox.main import build_unified_inbox
from unified_inbox.models.domain.message_domain import ChannelType


@pytest.mark.asyncio
async def test_build_wires_all_channels(storage):
    inbox = build_unified_inbox(storage=storage)

    assert inbox.storage is storage
    assert inbox.aggregator.channels == [ChannelType.GMAIL, ChannelType.DISCORD, ChannelType.LINE]

    health = inbox.breaker_health()
    assert set(health) == {"gmail", "discord", "line"}
    assert all(entry["status"] == "healthy" for entry in health.values())

    await inbox.close()
    structlog.reset_defaults()


def test_breaker_config_shortens_reset_in_development():
    dev = Settings(environment="development", BREAKER_RESET_TIMEOUT=30)
    prod = Settings(environment="production", BREAKER_RESET_TIMEOUT=30)

    assert dev.get_breaker_config()["reset_timeout"] == 10
    assert prod.get_breaker_config()["reset_timeout"] == 30


def test_proxy_url_per_channel():
    app_settings = Settings(PROXY_SERVER_URL="http://proxy.test/")

    assert app_settings.proxy_url("line") == "http://proxy.test/api/line"
