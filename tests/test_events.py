"""
Tests for Events API envelope classification.
"""

import pytest

from slacksync.services.events import (
    EventKind,
    Handshake,
    MessageEvent,
    ThreadReplyEvent,
    ReactionEvent,
    AppUninstalledEvent,
    TokensRevokedEvent,
    IgnoredEvent,
    UnknownEvent,
    parse_envelope,
)


def callback(event):
    return {"type": "event_callback", "team_id": "T123456", "event": event}


def test_url_verification_is_handshake():
    event = parse_envelope({"type": "url_verification", "challenge": "abc123"})
    assert isinstance(event, Handshake)
    assert event.challenge == "abc123"
    assert event.kind == EventKind.HANDSHAKE


def test_root_message():
    event = parse_envelope(callback({
        "type": "message",
        "ts": "1700000000.000100",
        "channel": "C1",
        "user": "U1",
        "text": "hello",
    }))
    assert isinstance(event, MessageEvent)
    assert event.ts == "1700000000.000100"
    assert event.channel_id == "C1"
    assert event.user_id == "U1"
    assert event.text == "hello"


def test_message_with_own_thread_ts_is_root():
    """The first message of a thread carries thread_ts equal to its own ts."""
    event = parse_envelope(callback({
        "type": "message",
        "ts": "1700000000.000100",
        "thread_ts": "1700000000.000100",
        "channel": "C1",
        "user": "U1",
    }))
    assert isinstance(event, MessageEvent)


def test_thread_reply():
    event = parse_envelope(callback({
        "type": "message",
        "ts": "1700000000.000200",
        "thread_ts": "1700000000.000100",
        "channel": "C1",
        "user": "U2",
        "text": "a reply",
    }))
    assert isinstance(event, ThreadReplyEvent)
    assert event.thread_ts == "1700000000.000100"
    assert event.kind == EventKind.THREAD_REPLY


@pytest.mark.parametrize("extra, reason", [
    ({"bot_id": "B1"}, "bot_message"),
    ({"subtype": "bot_message"}, "bot_message"),
    ({"subtype": "message_changed"}, "message_changed"),
    ({"subtype": "message_deleted"}, "message_deleted"),
])
def test_ignored_messages(extra, reason):
    message = {"type": "message", "ts": "1.0", "channel": "C1", "user": "U1", **extra}
    event = parse_envelope(callback(message))
    assert isinstance(event, IgnoredEvent)
    assert event.reason == reason


def test_bot_reply_in_thread_is_ignored():
    event = parse_envelope(callback({
        "type": "message",
        "ts": "2.0",
        "thread_ts": "1.0",
        "channel": "C1",
        "bot_id": "B1",
    }))
    assert isinstance(event, IgnoredEvent)


def test_message_without_channel_is_ignored():
    event = parse_envelope(callback({"type": "message", "ts": "1.0", "user": "U1"}))
    assert isinstance(event, IgnoredEvent)


def test_reaction_added_and_removed():
    added = parse_envelope(callback({
        "type": "reaction_added",
        "user": "U1",
        "reaction": "thumbsup",
        "item": {"type": "message", "channel": "C1", "ts": "1.0"},
    }))
    removed = parse_envelope(callback({
        "type": "reaction_removed",
        "user": "U1",
        "reaction": "thumbsup",
        "item": {"type": "message", "channel": "C1", "ts": "1.0"},
    }))

    assert isinstance(added, ReactionEvent)
    assert added.kind == EventKind.REACTION_ADDED
    assert added.removed is False
    assert added.item_ts == "1.0"
    assert added.channel_id == "C1"

    assert removed.kind == EventKind.REACTION_REMOVED
    assert removed.removed is True


def test_incomplete_reaction_is_ignored():
    event = parse_envelope(callback({"type": "reaction_added", "user": "U1", "item": {"ts": "1.0"}}))
    assert isinstance(event, IgnoredEvent)


def test_lifecycle_events():
    assert isinstance(parse_envelope(callback({"type": "app_uninstalled"})), AppUninstalledEvent)

    revoked = parse_envelope(callback({
        "type": "tokens_revoked",
        "tokens": {"oauth": ["U1", "U2"], "bot": ["UBOT"]},
    }))
    assert isinstance(revoked, TokensRevokedEvent)
    assert revoked.user_ids == ["U1", "U2"]
    assert revoked.bot_ids == ["UBOT"]


def test_unknown_event_type():
    event = parse_envelope(callback({"type": "channel_created"}))
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "channel_created"


def test_envelope_without_event():
    event = parse_envelope({"type": "app_rate_limited"})
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "app_rate_limited"
