"""
Conversation reconciler.

Applies inbound Slack events to the per-tenant conversation store. Every
handler is idempotent: replaying the same event leaves the stored state
unchanged. Reaction and thread-reply updates re-read the target row right
before writing and always assign a new list to the JSON column.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional, List, Set
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from ..models.tenant import Tenant
from ..models.conversation import Conversation
from ..models.slack_user import SlackUser
from ..exceptions import BadRequestError, NotFoundError, UpstreamError
from .events import MessageEvent, ReactionEvent, ThreadReplyEvent
from .users import UserDirectory
from .slack_api import SlackClientFactory
from .broadcaster import ConversationBroadcaster, NEW_MESSAGE, REACTION_UPDATE, NEW_THREAD_REPLY

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def slack_ts_to_datetime(ts: str) -> datetime:
    """Convert a Slack message ts ("1700000000.000100") to a naive UTC datetime."""
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Unparseable Slack ts {ts!r}, using current time")
        return datetime.utcnow()


def _ts_key(ts: Optional[str]) -> float:
    try:
        return float(ts)
    except (TypeError, ValueError):
        return 0.0


def add_reaction_user(reactions: List[Dict[str, Any]], name: str, user_id: str) -> List[Dict[str, Any]]:
    """Return a new reaction list with user_id added under name."""
    result = []
    found = False
    for entry in reactions or []:
        users = list(dict.fromkeys(entry.get("users") or []))
        if entry.get("name") == name:
            found = True
            if user_id not in users:
                users.append(user_id)
        if users:
            result.append({"name": entry.get("name"), "users": users, "count": len(users)})

    if not found:
        result.append({"name": name, "users": [user_id], "count": 1})

    return result


def remove_reaction_user(reactions: List[Dict[str, Any]], name: str, user_id: str) -> List[Dict[str, Any]]:
    """Return a new reaction list without user_id under name; empty entries are dropped."""
    result = []
    for entry in reactions or []:
        users = list(dict.fromkeys(entry.get("users") or []))
        if entry.get("name") == name:
            users = [user for user in users if user != user_id]
        if users:
            result.append({"name": entry.get("name"), "users": users, "count": len(users)})
    return result


def build_reply_record(
    ts: str,
    thread_ts: str,
    user_id: str,
    text: str,
    user_name: Optional[str] = None,
    subtype: Optional[str] = None
) -> Dict[str, Any]:
    """Shape of a reply embedded in its parent's thread_replies list."""
    return {
        "ts": ts,
        "user": user_id,
        "user_name": user_name,
        "text": text,
        "type": "message",
        "subtype": subtype,
        "thread_ts": thread_ts,
    }


class ConversationReconciler:
    """Materializes messages, reactions and thread replies for a tenant."""

    def __init__(
        self,
        db: Session,
        users: UserDirectory,
        broadcaster: Optional[ConversationBroadcaster] = None,
        client_factory: Optional[SlackClientFactory] = None
    ):
        self.db = db
        self.users = users
        self.broadcaster = broadcaster
        self.client_factory = client_factory

    def get_conversation(self, tenant_id: str, conversation_id: str) -> Optional[Conversation]:
        """Read the latest persisted row, discarding anything cached in the session."""
        return self.db.query(Conversation).filter(
            Conversation.tenant_id == tenant_id,
            Conversation.id == conversation_id
        ).populate_existing().first()

    def _publish(self, tenant_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(tenant_id, event_type, payload)

    async def _author_name(self, tenant: Tenant, user_id: str, fallback: Optional[str] = None) -> str:
        slack_user = await self.users.resolve(tenant, user_id)
        if slack_user is not None:
            return slack_user.name
        return fallback or user_id or "unknown"

    async def _channel_name(self, tenant: Tenant, channel_id: str) -> Optional[str]:
        if self.client_factory is None or not tenant.bot_token:
            return None
        try:
            channel = await self.client_factory(tenant.bot_token).conversations_info(channel_id)
        except UpstreamError as e:
            logger.warning(f"Could not resolve channel {channel_id} for tenant {tenant.id}: {e}")
            return None
        return channel.get("name")

    # Messages

    async def handle_message(self, tenant: Tenant, event: MessageEvent) -> Optional[Conversation]:
        """Insert a new root message; returns None when it was already stored."""
        if self.get_conversation(tenant.id, event.ts) is not None:
            logger.debug(f"Message {event.ts} already stored for tenant {tenant.id}")
            return None

        user_name = await self._author_name(tenant, event.user_id, event.username)
        channel_name = event.channel_name or await self._channel_name(tenant, event.channel_id)

        conversation = self.store_message(
            tenant.id,
            ts=event.ts,
            channel_id=event.channel_id,
            text=event.text,
            user_id=event.user_id,
            user_name=user_name,
            channel_name=channel_name
        )
        if conversation is None:
            return None

        self._publish(tenant.id, NEW_MESSAGE, conversation.to_dict())
        return conversation

    def store_message(
        self,
        tenant_id: str,
        ts: str,
        channel_id: str,
        text: str,
        user_id: str,
        user_name: Optional[str] = None,
        channel_name: Optional[str] = None,
        thread_ts: Optional[str] = None
    ) -> Optional[Conversation]:
        """Insert a conversation row; a duplicate key is a no-op returning None."""
        if self.get_conversation(tenant_id, ts) is not None:
            return None

        conversation = Conversation(
            id=ts,
            tenant_id=tenant_id,
            channel_id=channel_id,
            channel_name=channel_name,
            content=text or "",
            user_id=user_id or "unknown",
            user_name=user_name,
            reactions=[],
            thread_replies=[],
            thread_ts=thread_ts,
            slack_timestamp=slack_ts_to_datetime(ts)
        )
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.debug(f"Conversation {ts} inserted concurrently for tenant {tenant_id}")
            return None

        logger.info(f"Stored conversation {ts} in channel {channel_id} for tenant {tenant_id}")
        return conversation

    # Reactions

    def handle_reaction(self, tenant: Tenant, event: ReactionEvent) -> Optional[List[Dict[str, Any]]]:
        """Apply a reaction change; returns the new list, or None when nothing changed."""
        conversation = self.get_conversation(tenant.id, event.item_ts)
        if conversation is None:
            logger.info(f"Reaction for unknown message {event.item_ts} in tenant {tenant.id}, skipping")
            return None

        current = list(conversation.reactions or [])
        if event.removed:
            updated = remove_reaction_user(current, event.reaction, event.user_id)
        else:
            updated = add_reaction_user(current, event.reaction, event.user_id)

        if updated == current:
            return None

        conversation.reactions = updated
        self.db.commit()

        action = "removed" if event.removed else "added"
        logger.info(f"Reaction {event.reaction} {action} by {event.user_id} on {event.item_ts} in tenant {tenant.id}")
        self._publish(tenant.id, REACTION_UPDATE, {
            "conversationId": conversation.id,
            "reaction": event.reaction,
            "userId": event.user_id,
            "action": action,
            "reactions": updated,
        })
        return updated

    # Thread replies

    async def handle_thread_reply(self, tenant: Tenant, event: ThreadReplyEvent) -> Optional[Dict[str, Any]]:
        """Link a reply to its parent; returns the reply record, or None for a no-op."""
        if self.get_conversation(tenant.id, event.thread_ts) is None:
            logger.info(f"Parent conversation {event.thread_ts} not found for reply {event.ts} in tenant {tenant.id}")
            return None

        user_name = await self._author_name(tenant, event.user_id, event.username)

        return self.store_thread_reply(
            tenant.id,
            parent_id=event.thread_ts,
            ts=event.ts,
            text=event.text,
            user_id=event.user_id,
            user_name=user_name,
            channel_id=event.channel_id,
            subtype=event.subtype
        )

    def store_thread_reply(
        self,
        tenant_id: str,
        parent_id: str,
        ts: str,
        text: str,
        user_id: str,
        user_name: Optional[str] = None,
        channel_id: Optional[str] = None,
        subtype: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Write both views of a reply: the standalone row and the entry in
        the parent's thread_replies. Either write that is already present
        is skipped, so a half-applied earlier attempt is completed here.
        """
        if ts == parent_id:
            logger.warning(f"Ignoring reply {ts} that points at itself in tenant {tenant_id}")
            return None

        parent = self.get_conversation(tenant_id, parent_id)
        if parent is None:
            return None

        record = build_reply_record(ts, parent_id, user_id, text, user_name, subtype)

        row_created = self.store_message(
            tenant_id,
            ts=ts,
            channel_id=channel_id or parent.channel_id,
            text=text,
            user_id=user_id,
            user_name=user_name,
            channel_name=parent.channel_name,
            thread_ts=parent_id
        ) is not None

        # An existing row with this ts that is not a reply of this parent must not be embedded
        row = self.get_conversation(tenant_id, ts)
        if row is None or row.thread_ts != parent_id:
            logger.warning(
                f"Reply {ts} collides with a conversation outside thread {parent_id} in tenant {tenant_id}, skipping"
            )
            return None

        parent = self.get_conversation(tenant_id, parent_id)
        if parent is None:
            logger.warning(f"Parent conversation {parent_id} disappeared while storing reply {ts}")
            return None

        replies = list(parent.thread_replies or [])
        embedded = any(reply.get("ts") == ts for reply in replies)
        if not embedded:
            parent.thread_replies = replies + [record]
            self.db.commit()

        if embedded and not row_created:
            logger.debug(f"Reply {ts} already linked to {parent_id} in tenant {tenant_id}")
            return None

        logger.info(f"Added thread reply {ts} to conversation {parent_id} in tenant {tenant_id}")
        self._publish(tenant_id, NEW_THREAD_REPLY, {
            "conversationId": ts,
            "parentConversationId": parent_id,
            "content": text,
            "userId": user_id,
            "userName": user_name,
            "timestamp": slack_ts_to_datetime(ts).isoformat(),
        })
        return record

    def record_thread_reply(
        self,
        tenant_id: str,
        parent_id: str,
        ts: str,
        text: str,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        channel_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store a reply the dashboard already posted to Slack."""
        if ts == parent_id:
            raise BadRequestError("A reply cannot have the same ts as its parent")
        if self.get_conversation(tenant_id, parent_id) is None:
            raise NotFoundError("Parent conversation not found")

        self.store_thread_reply(
            tenant_id,
            parent_id=parent_id,
            ts=ts,
            text=text,
            user_id=user_id or "unknown",
            user_name=user_name,
            channel_id=channel_id
        )

        reply = self.get_conversation(tenant_id, ts)
        if reply is None or reply.thread_ts != parent_id:
            raise BadRequestError("Message ts already belongs to another conversation")
        return {
            "id": reply.id,
            "content": reply.content,
            "userName": reply.user_name,
            "timestamp": reply.slack_timestamp.isoformat(),
            "threadTs": reply.thread_ts,
        }

    def heal_thread(self, parent: Conversation) -> bool:
        """
        Bring a parent's embedded replies and its standalone reply rows back
        in line after a partial write. Returns True when anything changed.
        """
        rows = self.db.query(Conversation).filter(
            Conversation.tenant_id == parent.tenant_id,
            Conversation.thread_ts == parent.id
        ).all()
        row_ids = {row.id for row in rows}

        replies = list(parent.thread_replies or [])
        embedded_ids: Set[str] = {reply.get("ts") for reply in replies}

        candidates = {
            reply.get("ts") for reply in replies
            if reply.get("ts") and reply.get("ts") not in row_ids
        }
        taken: Set[str] = set()
        if candidates:
            taken = {
                conversation_id for (conversation_id,) in self.db.query(Conversation.id).filter(
                    Conversation.tenant_id == parent.tenant_id,
                    Conversation.id.in_(candidates)
                )
            }

        # Embedded entries pointing at the parent or another root are dropped, never materialized
        dropped = [reply for reply in replies if reply.get("ts") in taken]
        if dropped:
            logger.warning(
                f"Dropping {len(dropped)} embedded replies of thread {parent.id} in tenant {parent.tenant_id} "
                f"that collide with conversations outside the thread"
            )
            replies = [reply for reply in replies if reply.get("ts") not in taken]

        missing_embedded = [row for row in rows if row.id not in embedded_ids]
        missing_rows = [
            reply for reply in replies
            if reply.get("ts") and reply.get("ts") not in row_ids
        ]

        if not missing_embedded and not missing_rows and not dropped:
            return False

        for reply in missing_rows:
            self.db.add(Conversation(
                id=reply["ts"],
                tenant_id=parent.tenant_id,
                channel_id=parent.channel_id,
                channel_name=parent.channel_name,
                content=reply.get("text") or "",
                user_id=reply.get("user") or "unknown",
                user_name=reply.get("user_name"),
                reactions=[],
                thread_replies=[],
                thread_ts=parent.id,
                slack_timestamp=slack_ts_to_datetime(reply["ts"])
            ))

        if missing_embedded:
            replies.extend(
                build_reply_record(row.id, parent.id, row.user_id, row.content, row.user_name)
                for row in missing_embedded
            )
        if missing_embedded or dropped:
            parent.thread_replies = sorted(replies, key=lambda reply: _ts_key(reply.get("ts")))

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Concurrent write while healing thread {parent.id} in tenant {parent.tenant_id}")
            return False

        logger.info(
            f"Healed thread {parent.id} in tenant {parent.tenant_id}: "
            f"{len(missing_embedded)} embedded, {len(missing_rows)} rows restored, {len(dropped)} dropped"
        )
        return True

    # Read path

    def list_conversations(self, tenant_id: str, limit: int = DEFAULT_LIST_LIMIT) -> List[Dict[str, Any]]:
        """Newest root conversations, each with the author's cached profile."""
        conversations = self.db.query(Conversation).filter(
            Conversation.tenant_id == tenant_id,
            Conversation.thread_ts.is_(None)
        ).order_by(Conversation.slack_timestamp.desc()).limit(limit).all()

        for conversation in conversations:
            self.heal_thread(conversation)

        user_ids = {conversation.user_id for conversation in conversations}
        profiles: Dict[str, SlackUser] = {}
        if user_ids:
            for slack_user in self.db.query(SlackUser).filter(
                SlackUser.tenant_id == tenant_id,
                SlackUser.slack_user_id.in_(user_ids)
            ).all():
                profiles[slack_user.slack_user_id] = slack_user

        result = []
        for conversation in conversations:
            data = conversation.to_dict()
            slack_user = profiles.get(conversation.user_id)
            data["slackUser"] = slack_user.to_dict() if slack_user else None
            result.append(data)
        return result
