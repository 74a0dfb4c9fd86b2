"""
Conversation read path, dashboard thread replies, and the live stream.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..exceptions import SlackSyncError, NotFoundError
from ..services.directory import LookupStatus
from .common import to_http_exception, build_directory, build_reconciler, get_broadcaster
from .schemas import ThreadReplyRequest

logger = logging.getLogger(__name__)

conversations_router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _require_tenant(request: Request, db: Session, tenant_id: str):
    lookup = build_directory(request, db).get_tenant(tenant_id)
    if lookup.status == LookupStatus.NOT_FOUND:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return lookup


@conversations_router.get("/{tenant_id}/conversations")
async def list_conversations(tenant_id: str, request: Request, db: Session = Depends(get_session)):
    """Latest root conversations with author profiles."""
    try:
        _require_tenant(request, db, tenant_id)
        conversations = build_reconciler(request, db).list_conversations(tenant_id)
        return {"conversations": conversations}
    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching conversations for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch conversations")


@conversations_router.post("/{tenant_id}/conversations/thread-reply")
async def store_thread_reply(
    tenant_id: str,
    body: ThreadReplyRequest,
    request: Request,
    db: Session = Depends(get_session)
):
    """Record a thread reply the dashboard posted, linking it to its parent."""
    try:
        lookup = _require_tenant(request, db, tenant_id)
        reconciler = build_reconciler(request, db)

        user_name = None
        if lookup.found and body.user_id:
            slack_user = await reconciler.users.resolve(lookup.tenant, body.user_id)
            user_name = slack_user.name if slack_user else None

        reply = reconciler.record_thread_reply(
            tenant_id,
            parent_id=body.parent_conversation_id,
            ts=body.message_ts,
            text=body.message_text,
            user_id=body.user_id,
            user_name=user_name,
            channel_id=body.channel_id
        )
        return {"success": True, "threadReply": reply}

    except SlackSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error storing thread reply for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to store thread reply")


@conversations_router.get("/{tenant_id}/conversations/stream")
async def stream_conversations(tenant_id: str, request: Request, db: Session = Depends(get_session)):
    """Server-sent events for conversation changes of one tenant."""
    try:
        _require_tenant(request, db, tenant_id)
    except SlackSyncError as e:
        raise to_http_exception(e)

    broadcaster = get_broadcaster(request)
    subscription = await broadcaster.subscribe(tenant_id)
    return StreamingResponse(
        broadcaster.stream(subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )
