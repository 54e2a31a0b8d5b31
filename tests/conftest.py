from datetime import UTC, datetime, timedelta

import pytest

from unified_inbox.models.domain.message_domain import (
    ChannelInfo,
    ChannelType,
    GetMessagesParams,
    GetMessagesResult,
    Message,
    Priority,
    SendMessageParams,
    SendMessageResult,
)
from unified_inbox.models.domain.user_mapping_domain import (
    ChannelIdentities,
    DiscordIdentity,
    GmailIdentity,
    LineIdentity,
    UserMapping,
)
from unified_inbox.services.channels.base import ChannelClient
from unified_inbox.services.storage.repository import InMemoryStorageRepository

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannelClient(ChannelClient):
    def __init__(
        self,
        channel: ChannelType,
        messages: list[Message] | None = None,
        authenticated: bool = True,
        error: Exception | None = None,
    ):
        self.channel = channel
        self.messages = messages or []
        self.authenticated = authenticated
        self.error = error
        self.get_messages_calls: list[GetMessagesParams] = []
        self.sent: list[SendMessageParams] = []

    async def is_authenticated(self) -> bool:
        return self.authenticated

    async def get_messages(self, params: GetMessagesParams) -> GetMessagesResult:
        self.get_messages_calls.append(params)
        if self.error is not None:
            raise self.error
        messages = self.messages
        if params.unread_only:
            messages = [m for m in messages if m.is_unread]
        if params.limit:
            messages = messages[: params.limit]
        return GetMessagesResult(messages=list(messages))

    async def send_message(self, params: SendMessageParams) -> SendMessageResult:
        self.sent.append(params)
        return SendMessageResult(success=True, message_id=f"sent-{len(self.sent)}")

    async def authenticate(self, credentials):
        raise NotImplementedError

    def channel_info(self) -> ChannelInfo:
        return ChannelInfo(type=self.channel, name=self.channel.value, is_connected=True)


def make_message(
    message_id: str,
    sender: str,
    channel: ChannelType = ChannelType.GMAIL,
    minutes_ago: int = 0,
    is_unread: bool = True,
) -> Message:
    return Message(
        id=message_id,
        sender=sender,
        recipient="me",
        content=f"content of {message_id}",
        timestamp=BASE_TIME - timedelta(minutes=minutes_ago),
        is_unread=is_unread,
        channel=channel,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryStorageRepository()


@pytest.fixture
def alice_mapping():
    return UserMapping(
        id="user-alice",
        name="Alice",
        channels=ChannelIdentities(
            gmail=GmailIdentity(email="alice@co.com", user_id="g-alice"),
            discord=DiscordIdentity(username="alice_d", user_id="d-alice"),
            line=LineIdentity(user_id="U-alice", display_name="Alice L"),
        ),
        priority=Priority.HIGH,
    )


@pytest.fixture
def bob_mapping():
    return UserMapping(
        id="user-bob",
        name="Bob",
        channels=ChannelIdentities(
            gmail=GmailIdentity(email="bob@co.com", user_id="g-bob"),
        ),
        priority=Priority.URGENT,
    )
