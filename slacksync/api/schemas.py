"""
Request bodies accepted by the dashboard-facing endpoints.

Field names follow the dashboard's camelCase JSON; snake_case names are
accepted too.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class ReplyAction(str, Enum):
    POST_MESSAGE = "post_message"
    REPLY = "reply"
    ADD_REACTION = "add_reaction"


class UserAction(str, Enum):
    ADD_TOKEN = "add_token"
    REMOVE_TOKEN = "remove_token"
    TOGGLE_ACTIVE = "toggle_active"
    CHECK_TOKEN = "check_token"


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReplyRequest(CamelModel):
    """Outbound send: a message, a thread reply, or a reaction."""

    action: ReplyAction
    channel_id: Optional[str] = Field(None, alias="channelId")
    message_text: Optional[str] = Field(None, alias="messageText")
    message_ts: Optional[str] = Field(None, alias="messageTs", description="Target message for add_reaction")
    thread_ts: Optional[str] = Field(None, alias="threadTs", description="Parent message when replying in a thread")
    as_user_id: Optional[str] = Field(None, alias="asUserId", description="Slack user to post as, if they granted a token")
    reaction_name: Optional[str] = Field(None, alias="reactionName")


class DisconnectRequest(CamelModel):
    confirm_disconnect: bool = Field(False, alias="confirmDisconnect")


class UserActionRequest(CamelModel):
    """Token management for one Slack user."""

    action: UserAction
    slack_user_id: str = Field(..., alias="slackUserId")
    user_token: Optional[str] = Field(None, alias="userToken")
    scopes: Optional[List[str]] = None
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")


class ThreadReplyRequest(CamelModel):
    """A reply the dashboard has already posted to Slack."""

    parent_conversation_id: str = Field(..., alias="parentConversationId")
    message_text: str = Field(..., alias="messageText")
    message_ts: str = Field(..., alias="messageTs")
    user_id: Optional[str] = Field(None, alias="userId")
    channel_id: Optional[str] = Field(None, alias="channelId")
