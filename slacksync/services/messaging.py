"""
Outbound messaging gateway.

Posts on behalf of a tenant, preferring the acting user's own token and
falling back to the bot token. A bot post made after a failed user-token
attempt carries username/icon overrides so it still reads as that user
("Name (via App)"). Every successful post is written to the conversation
store directly, since Slack does not always echo it back as an event.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
import logging

from ..models.tenant import Tenant
from ..models.slack_user import SlackUser
from ..exceptions import UpstreamError, SlackApiError
from .slack_api import SlackClientFactory, AUTH_ERROR_CODES
from .users import UserDirectory
from .reconciler import ConversationReconciler
from .broadcaster import ConversationBroadcaster, NEW_MESSAGE, USER_TOKENS_REVOKED

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "Slack Sync"


@dataclass
class PostResult:
    ok: bool
    message_ts: Optional[str] = None
    posted_as_user: bool = False
    author_name: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.ok,
            "messageTs": self.message_ts,
            "postedAsUser": self.posted_as_user,
            "userName": self.author_name,
            "error": self.error,
        }


class MessagingGateway:
    """Posts messages and reactions with tiered credentials."""

    def __init__(
        self,
        db: Session,
        users: UserDirectory,
        reconciler: ConversationReconciler,
        client_factory: SlackClientFactory,
        broadcaster: Optional[ConversationBroadcaster] = None,
        app_name: str = DEFAULT_APP_NAME,
        fallback_on_any_error: bool = True
    ):
        self.db = db
        self.users = users
        self.reconciler = reconciler
        self.client_factory = client_factory
        self.broadcaster = broadcaster
        self.app_name = app_name
        self.fallback_on_any_error = fallback_on_any_error

    def _usable_user(self, tenant: Tenant, as_user_id: Optional[str]) -> Optional[SlackUser]:
        if not as_user_id:
            return None
        slack_user = self.users.get_user(tenant.id, as_user_id)
        if slack_user is None or not slack_user.is_active or not slack_user.user_token:
            return None
        if slack_user.token_expired:
            logger.info(f"User token for {as_user_id} in tenant {tenant.id} has expired, posting as bot")
            return None
        return slack_user

    async def post(
        self,
        tenant: Tenant,
        channel_id: str,
        text: str,
        as_user_id: Optional[str] = None,
        thread_ts: Optional[str] = None
    ) -> PostResult:
        """
        Post a message, trying the user token first when one is usable.

        The result says which tier succeeded. Failures of the final tier
        are returned as ok=False with the Slack error code.
        """
        slack_user = self._usable_user(tenant, as_user_id)
        username = None
        icon_url = None

        if slack_user is not None:
            try:
                response = await self.client_factory(slack_user.user_token).chat_post_message(
                    channel_id, text, thread_ts=thread_ts
                )
                return self._record(tenant, channel_id, text, thread_ts, response, slack_user.slack_user_id,
                                    slack_user.name, posted_as_user=True)
            except UpstreamError as e:
                auth_error = isinstance(e, SlackApiError) and e.error in AUTH_ERROR_CODES
                logger.warning(f"User-token post failed for {slack_user.slack_user_id} in tenant {tenant.id}: {e}")

                if auth_error:
                    await self.cleanup_user_token(tenant, slack_user)
                elif not self.fallback_on_any_error:
                    return PostResult(ok=False, error=_error_code(e))

            username = f"{slack_user.name} (via {self.app_name})"
            icon_url = slack_user.profile_image

        try:
            response = await self.client_factory(tenant.bot_token).chat_post_message(
                channel_id, text, thread_ts=thread_ts, username=username, icon_url=icon_url
            )
        except UpstreamError as e:
            logger.error(f"Bot post to {channel_id} failed for tenant {tenant.id}: {e}")
            return PostResult(ok=False, error=_error_code(e))

        if username is not None:
            return self._record(tenant, channel_id, text, thread_ts, response, as_user_id, username,
                                posted_as_user=False)

        bot_user_id = (tenant.slack_config or {}).get("bot_user_id") or "bot"
        return self._record(tenant, channel_id, text, thread_ts, response, bot_user_id, self.app_name,
                            posted_as_user=False)

    def _record(
        self,
        tenant: Tenant,
        channel_id: str,
        text: str,
        thread_ts: Optional[str],
        response: Dict[str, Any],
        user_id: str,
        author_name: str,
        posted_as_user: bool
    ) -> PostResult:
        message_ts = response.get("ts")
        result = PostResult(ok=True, message_ts=message_ts, posted_as_user=posted_as_user, author_name=author_name)
        if not message_ts:
            logger.warning(f"Slack accepted a post to {channel_id} without returning a ts")
            return result

        if thread_ts:
            self.reconciler.store_thread_reply(
                tenant.id,
                parent_id=thread_ts,
                ts=message_ts,
                text=text,
                user_id=user_id,
                user_name=author_name,
                channel_id=channel_id
            )
        else:
            conversation = self.reconciler.store_message(
                tenant.id,
                ts=message_ts,
                channel_id=response.get("channel") or channel_id,
                text=text,
                user_id=user_id,
                user_name=author_name
            )
            if conversation is not None and self.broadcaster is not None:
                self.broadcaster.publish(tenant.id, NEW_MESSAGE, conversation.to_dict())

        logger.info(f"Posted message {message_ts} to {channel_id} for tenant {tenant.id} (as user: {posted_as_user})")
        return result

    async def add_reaction(self, tenant: Tenant, channel_id: str, message_ts: str, name: str) -> bool:
        """React with the bot token; a reaction that is already there counts as success."""
        try:
            await self.client_factory(tenant.bot_token).reactions_add(channel_id, message_ts, name)
        except SlackApiError as e:
            if e.error == "already_reacted":
                return True
            logger.error(f"Error adding reaction {name} to {message_ts}: {e.error}")
            return False
        except UpstreamError as e:
            logger.error(f"Error adding reaction {name} to {message_ts}: {e}")
            return False
        return True

    async def check_token_valid(self, tenant: Tenant, slack_user_id: str) -> bool:
        """Probe a user's token with auth.test; a rejected token is cleaned up."""
        slack_user = self.users.get_user(tenant.id, slack_user_id)
        if slack_user is None or not slack_user.user_token:
            return False

        try:
            await self.client_factory(slack_user.user_token).auth_test()
            return True
        except SlackApiError as e:
            logger.info(f"User token for {slack_user_id} in tenant {tenant.id} rejected ({e.error}), cleaning up")
            await self.cleanup_user_token(tenant, slack_user)
            return False
        except UpstreamError as e:
            logger.warning(f"Could not check token for {slack_user_id} in tenant {tenant.id}: {e}")
            return False

    async def cleanup_user_token(self, tenant: Tenant, slack_user: SlackUser) -> None:
        """Best-effort remote revoke, then an unconditional local clear."""
        token = slack_user.user_token
        try:
            if token:
                await self.client_factory(token).auth_revoke()
        except UpstreamError as e:
            logger.warning(f"Failed to revoke token for {slack_user.slack_user_id} remotely: {e}")
        finally:
            slack_user.clear_token()
            self.db.commit()
            logger.info(f"Cleared user token for {slack_user.slack_user_id} in tenant {tenant.id}")

        if self.broadcaster is not None:
            self.broadcaster.publish(tenant.id, USER_TOKENS_REVOKED, {"userIds": [slack_user.slack_user_id]})


def _error_code(error: UpstreamError) -> str:
    if isinstance(error, SlackApiError):
        return error.error
    return str(error)
