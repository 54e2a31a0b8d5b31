"""
Identity resolution: per-channel sender matching and the mapping service.
"""

import copy

import pytest
from conftest import make_message

from unified_inbox.models.domain.message_domain import ChannelType, Priority
from unified_inbox.models.domain.user_mapping_domain import (
    ChannelIdentities,
    DiscordIdentity,
    GmailIdentity,
    LineIdentity,
    UserMapping,
    UserMappingRequest,
)
from unified_inbox.services.inbox.identity_resolver import (
    UserMappingService,
    find_mapping,
    resolve,
    sender_matches,
)
from unified_inbox.services.storage.repository import StorageKeys


@pytest.mark.parametrize(
    "channel, sender, identity, expected",
    [
        (ChannelType.GMAIL, "Alice <alice@co.com>", GmailIdentity(email="alice@co.com", user_id="g"), True),
        (ChannelType.GMAIL, "alice@co.com", GmailIdentity(email="alice@co.com", user_id="g"), True),
        (ChannelType.GMAIL, "bob@co.com", GmailIdentity(email="alice@co.com", user_id="g"), False),
        (ChannelType.DISCORD, "alice_d#1234", DiscordIdentity(username="alice_d", user_id="d"), True),
        (ChannelType.DISCORD, "someone", DiscordIdentity(username="alice_d", user_id="d"), False),
        (ChannelType.LINE, "U-alice", LineIdentity(user_id="U-alice", display_name="A"), True),
        (ChannelType.LINE, "U-alice-2", LineIdentity(user_id="U-alice", display_name="A"), False),
        (ChannelType.LINE, "prefix U-alice", LineIdentity(user_id="U-alice", display_name="A"), False),
        # An identity of the wrong shape never matches
        (ChannelType.LINE, "alice@co.com", GmailIdentity(email="alice@co.com", user_id="g"), False),
        (ChannelType.GMAIL, "anyone", None, False),
    ],
)
def test_sender_matches(channel, sender, identity, expected):
    assert sender_matches(channel, sender, identity) is expected


def test_empty_identity_values_never_match():
    assert sender_matches(ChannelType.GMAIL, "anything", GmailIdentity(email="", user_id="g")) is False
    assert (
        sender_matches(ChannelType.DISCORD, "anything", DiscordIdentity(username="", user_id="d"))
        is False
    )


def test_first_matching_mapping_wins(alice_mapping):
    duplicate = UserMapping(
        id="user-alice-2",
        name="Alice Again",
        channels=ChannelIdentities(gmail=GmailIdentity(email="alice@co.com", user_id="g2")),
        priority=Priority.LOW,
    )
    message = make_message("m1", "Alice <alice@co.com>")

    assert find_mapping(message, [alice_mapping, duplicate]).id == "user-alice"
    assert find_mapping(message, [duplicate, alice_mapping]).id == "user-alice-2"


def test_mapping_without_channel_identity_is_skipped(bob_mapping):
    message = make_message("l1", "U-bob", channel=ChannelType.LINE)

    [resolved] = resolve([bob_mapping], [message])

    assert resolved.resolved_user is None
    assert resolved.priority is Priority.NORMAL
    assert resolved.is_resolved is False


def test_resolve_preserves_order_and_priority(alice_mapping, bob_mapping):
    messages = [
        make_message("m1", "bob@co.com"),
        make_message("m2", "U-alice", channel=ChannelType.LINE),
        make_message("m3", "nobody@co.com"),
    ]

    resolved = resolve([alice_mapping, bob_mapping], messages)

    assert [r.message.id for r in resolved] == ["m1", "m2", "m3"]
    assert [r.priority for r in resolved] == [Priority.URGENT, Priority.HIGH, Priority.NORMAL]
    assert resolved[1].channel is ChannelType.LINE


def test_resolve_is_deterministic_and_does_not_mutate(alice_mapping, bob_mapping):
    mappings = [alice_mapping, bob_mapping]
    messages = [make_message("m1", "alice@co.com"), make_message("m2", "bob@co.com")]
    mappings_before = copy.deepcopy(mappings)
    messages_before = list(messages)

    first = resolve(mappings, messages)
    second = resolve(mappings, messages)

    assert first == second
    assert mappings == mappings_before
    assert messages == messages_before


def test_resolve_with_no_mappings():
    resolved = resolve([], [make_message("m1", "alice@co.com")])

    assert resolved[0].resolved_user is None


@pytest.mark.asyncio
async def test_create_mapping_persists_and_assigns_id(storage):
    service = UserMappingService(storage)
    request = UserMappingRequest(
        name="Carol",
        channels=ChannelIdentities(line=LineIdentity(user_id="U-carol", display_name="Carol")),
        priority=Priority.HIGH,
        tags=["family"],
    )

    mapping = await service.create_mapping(request)

    assert mapping.id.startswith("user-")
    assert mapping.is_active is True
    assert mapping.linked_channels() == [ChannelType.LINE]

    stored = await storage.get(StorageKeys.USER_MAPPINGS)
    assert [item["id"] for item in stored] == [mapping.id]
    assert await service.get_mapping(mapping.id) == mapping


@pytest.mark.asyncio
async def test_create_mapping_appends_in_order(storage):
    service = UserMappingService(storage)
    channels = ChannelIdentities(gmail=GmailIdentity(email="same@co.com", user_id="g"))

    first = await service.create_mapping(UserMappingRequest(name="First", channels=channels))
    second = await service.create_mapping(UserMappingRequest(name="Second", channels=channels))

    assert [m.id for m in await service.get_all_mappings()] == [first.id, second.id]

    [resolved] = await service.resolve_user_mappings([make_message("m1", "same@co.com")])
    assert resolved.resolved_user.id == first.id


@pytest.mark.asyncio
async def test_get_mapping_unknown_user(storage):
    service = UserMappingService(storage)

    assert await service.get_mapping("user-missing") is None
    assert await service.get_all_mappings() == []
