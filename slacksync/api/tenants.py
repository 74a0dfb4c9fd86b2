"""
Per-tenant Slack endpoints used by the dashboard.

- POST  /{tenant_id}/slack/reply       outbound message, reply or reaction
- GET   /{tenant_id}/slack/status      connection state
- POST  /{tenant_id}/slack/disconnect  uninstall and reset
- GET   /{tenant_id}/slack/users       user directory with stats
- PATCH /{tenant_id}/slack/users       user token management
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.orm import Session
from typing import Dict, Any, Optional
import logging

from ..database import get_session
from ..exceptions import SlackSyncError, NotFoundError
from ..services.directory import LookupStatus
from ..services.users import UserDirectory
from .common import to_http_exception, build_directory, build_gateway, get_client_factory
from .schemas import ReplyRequest, ReplyAction, DisconnectRequest, UserActionRequest, UserAction

logger = logging.getLogger(__name__)

tenants_router = APIRouter()


@tenants_router.post("/{tenant_id}/slack/reply")
async def send_reply(
    tenant_id: str,
    body: ReplyRequest,
    request: Request,
    db: Session = Depends(get_session)
):
    """Post a message or reaction to Slack on behalf of the tenant."""
    try:
        tenant = build_directory(request, db).require_connected(tenant_id)
        gateway = build_gateway(request, db)

        if body.action in (ReplyAction.POST_MESSAGE, ReplyAction.REPLY):
            if not body.channel_id or not body.message_text:
                raise HTTPException(status_code=400, detail="Missing channelId or messageText")

            result = await gateway.post(
                tenant,
                body.channel_id,
                body.message_text,
                as_user_id=body.as_user_id,
                thread_ts=body.thread_ts
            )
            if not result.ok:
                raise HTTPException(status_code=502, detail=result.error or "Failed to send message")

            response = result.to_dict()
            response["message"] = "Reply sent successfully" if body.action == ReplyAction.REPLY else "Message posted successfully"
            return response

        if not body.channel_id or not body.message_ts or not body.reaction_name:
            raise HTTPException(status_code=400, detail="Missing channelId, messageTs, or reactionName")

        if not await gateway.add_reaction(tenant, body.channel_id, body.message_ts, body.reaction_name):
            raise HTTPException(status_code=502, detail="Failed to add reaction")

        return {"success": True, "message": "Reaction added successfully"}

    except HTTPException:
        raise
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error handling Slack reply for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process request")


@tenants_router.get("/{tenant_id}/slack/status")
async def get_slack_status(tenant_id: str, request: Request, db: Session = Depends(get_session)):
    try:
        return build_directory(request, db).status(tenant_id)
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error reading Slack status for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@tenants_router.post("/{tenant_id}/slack/disconnect")
async def disconnect_slack(
    tenant_id: str,
    body: DisconnectRequest,
    request: Request,
    db: Session = Depends(get_session)
):
    """Uninstall the Slack app and delete everything synced for the tenant."""
    if not body.confirm_disconnect:
        raise HTTPException(status_code=400, detail="Disconnect confirmation required")

    try:
        details = await build_directory(request, db).disconnect(tenant_id)
        return {
            "success": True,
            "message": "Slack integration disconnected",
            "details": details,
        }
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error disconnecting Slack for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to disconnect Slack")


@tenants_router.get("/{tenant_id}/slack/users")
async def list_slack_users(
    tenant_id: str,
    request: Request,
    include_inactive: bool = Query(False, alias="includeInactive"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_session)
) -> Dict[str, Any]:
    try:
        if build_directory(request, db).get_tenant(tenant_id).status == LookupStatus.NOT_FOUND:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return UserDirectory(db, get_client_factory(request)).list_users(
            tenant_id,
            include_inactive=include_inactive,
            search=search
        )
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing Slack users for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@tenants_router.patch("/{tenant_id}/slack/users")
async def update_slack_user(
    tenant_id: str,
    body: UserActionRequest,
    request: Request,
    db: Session = Depends(get_session)
):
    """Grant, remove or check a user token, or toggle a user's active flag."""
    try:
        directory = build_directory(request, db)
        users = UserDirectory(db, get_client_factory(request))

        if body.action == UserAction.ADD_TOKEN:
            if not body.user_token:
                raise HTTPException(status_code=400, detail="Missing userToken")
            tenant = directory.require_connected(tenant_id)
            slack_user = await users.grant_user_token(
                tenant,
                body.slack_user_id,
                body.user_token,
                scopes=body.scopes,
                expires_at=body.expires_at
            )
            return {"success": True, "user": slack_user.to_dict()}

        if body.action == UserAction.REMOVE_TOKEN:
            slack_user = users.remove_token(tenant_id, body.slack_user_id)
            return {"success": True, "user": slack_user.to_dict()}

        if body.action == UserAction.TOGGLE_ACTIVE:
            slack_user = users.toggle_active(tenant_id, body.slack_user_id)
            return {"success": True, "user": slack_user.to_dict()}

        tenant = directory.require_connected(tenant_id)
        valid = await build_gateway(request, db).check_token_valid(tenant, body.slack_user_id)
        slack_user = users.get_user(tenant_id, body.slack_user_id)
        return {
            "success": True,
            "valid": valid,
            "user": slack_user.to_dict() if slack_user else None,
        }

    except HTTPException:
        raise
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating Slack user for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
