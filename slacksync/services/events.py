"""
Slack Events API payload classification.

parse_envelope() turns a decoded JSON envelope into exactly one event
variant, so handlers never re-inspect raw type/subtype fields.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List, Union

# Subtypes that never represent a new human-authored message
IGNORED_MESSAGE_SUBTYPES = frozenset({
    "bot_message",
    "message_changed",
    "message_deleted",
})


class EventKind(str, Enum):
    """Kind of inbound event."""

    HANDSHAKE = "handshake"
    MESSAGE = "message"
    THREAD_REPLY = "thread_reply"
    REACTION_ADDED = "reaction_added"
    REACTION_REMOVED = "reaction_removed"
    APP_UNINSTALLED = "app_uninstalled"
    TOKENS_REVOKED = "tokens_revoked"
    IGNORED = "ignored"
    UNKNOWN = "unknown"


@dataclass
class Handshake:
    challenge: str
    kind: EventKind = field(default=EventKind.HANDSHAKE, init=False)


@dataclass
class MessageEvent:
    """A new root message."""

    ts: str
    channel_id: str
    user_id: str
    text: str = ""
    channel_name: Optional[str] = None
    username: Optional[str] = None
    kind: EventKind = field(default=EventKind.MESSAGE, init=False)


@dataclass
class ThreadReplyEvent:
    """A message whose thread_ts points at a different (parent) message."""

    ts: str
    thread_ts: str
    channel_id: str
    user_id: str
    text: str = ""
    subtype: Optional[str] = None
    username: Optional[str] = None
    kind: EventKind = field(default=EventKind.THREAD_REPLY, init=False)


@dataclass
class ReactionEvent:
    """A reaction added to or removed from a message."""

    reaction: str
    user_id: str
    item_ts: str
    channel_id: Optional[str] = None
    removed: bool = False
    kind: EventKind = field(default=EventKind.REACTION_ADDED, init=False)

    def __post_init__(self):
        self.kind = EventKind.REACTION_REMOVED if self.removed else EventKind.REACTION_ADDED


@dataclass
class AppUninstalledEvent:
    kind: EventKind = field(default=EventKind.APP_UNINSTALLED, init=False)


@dataclass
class TokensRevokedEvent:
    """User (oauth) and bot tokens Slack revoked for this workspace."""

    user_ids: List[str] = field(default_factory=list)
    bot_ids: List[str] = field(default_factory=list)
    kind: EventKind = field(default=EventKind.TOKENS_REVOKED, init=False)


@dataclass
class IgnoredEvent:
    reason: str
    kind: EventKind = field(default=EventKind.IGNORED, init=False)


@dataclass
class UnknownEvent:
    event_type: Optional[str]
    kind: EventKind = field(default=EventKind.UNKNOWN, init=False)


SlackEvent = Union[
    Handshake,
    MessageEvent,
    ThreadReplyEvent,
    ReactionEvent,
    AppUninstalledEvent,
    TokensRevokedEvent,
    IgnoredEvent,
    UnknownEvent,
]


def parse_envelope(envelope: Dict[str, Any]) -> SlackEvent:
    """Classify an Events API envelope into a single event variant."""
    envelope_type = envelope.get("type")

    if envelope_type == "url_verification":
        return Handshake(challenge=str(envelope.get("challenge", "")))

    event = envelope.get("event")
    if not isinstance(event, dict):
        return UnknownEvent(event_type=envelope_type)

    event_type = event.get("type")

    if event_type == "message":
        return _parse_message(event)

    if event_type in ("reaction_added", "reaction_removed"):
        item = event.get("item") or {}
        if not event.get("reaction") or not event.get("user") or not item.get("ts"):
            return IgnoredEvent(reason="incomplete_reaction")
        return ReactionEvent(
            reaction=event["reaction"],
            user_id=event["user"],
            item_ts=item["ts"],
            channel_id=item.get("channel"),
            removed=event_type == "reaction_removed"
        )

    if event_type == "app_uninstalled":
        return AppUninstalledEvent()

    if event_type == "tokens_revoked":
        tokens = event.get("tokens") or {}
        return TokensRevokedEvent(
            user_ids=list(tokens.get("oauth") or []),
            bot_ids=list(tokens.get("bot") or [])
        )

    return UnknownEvent(event_type=event_type)


def _parse_message(event: Dict[str, Any]) -> SlackEvent:
    # Our own outbound posts come back as bot messages and must not be re-ingested
    if event.get("bot_id"):
        return IgnoredEvent(reason="bot_message")

    subtype = event.get("subtype")
    if subtype in IGNORED_MESSAGE_SUBTYPES:
        return IgnoredEvent(reason=subtype)

    ts = event.get("ts")
    channel_id = event.get("channel")
    if not ts or not channel_id:
        return IgnoredEvent(reason="incomplete_message")

    user_id = event.get("user") or ""
    text = event.get("text") or ""
    thread_ts = event.get("thread_ts")

    if thread_ts and thread_ts != ts:
        return ThreadReplyEvent(
            ts=ts,
            thread_ts=thread_ts,
            channel_id=channel_id,
            user_id=user_id,
            text=text,
            subtype=subtype,
            username=event.get("username")
        )

    return MessageEvent(
        ts=ts,
        channel_id=channel_id,
        user_id=user_id,
        text=text,
        channel_name=event.get("channel_name"),
        username=event.get("username")
    )
