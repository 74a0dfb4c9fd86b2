"""
Slack Events API webhooks.

Two ingress routes exist and exactly one is active, chosen by
slack.ingress_mode:
- POST /api/slack/events              global; tenant found by team id
- POST /api/slack/{tenant_id}/events  tenant-scoped path
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import Dict, Any, Optional
import logging

from ..database import get_session
from ..config import get_config
from ..exceptions import SlackSyncError
from ..services.dispatcher import EventDispatcher, INGRESS_GLOBAL, INGRESS_TENANT
from .common import to_http_exception, get_broadcaster, get_client_factory, get_verifier

logger = logging.getLogger(__name__)

slack_router = APIRouter()


def _signature_headers(request: Request):
    """Slack's header names, with the shorter generic names accepted as aliases."""
    headers = request.headers
    timestamp = headers.get("x-slack-request-timestamp") or headers.get("x-signature-timestamp")
    signature = headers.get("x-slack-signature") or headers.get("x-signature")
    return timestamp, signature


async def _handle_events(request: Request, db: Session, ingress_mode: str, tenant_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        if get_config().slack.ingress_mode != ingress_mode:
            raise HTTPException(status_code=404, detail="Not found")

        body = await request.body()
        timestamp, signature = _signature_headers(request)

        dispatcher = EventDispatcher.for_session(
            db,
            get_client_factory(request),
            get_verifier(request),
            broadcaster=get_broadcaster(request),
            ingress_mode=ingress_mode
        )
        return await dispatcher.dispatch(body, timestamp, signature, tenant_id=tenant_id)

    except HTTPException:
        raise
    except SlackSyncError as e:
        logger.info(f"Rejected Slack event request ({e.status_code}): {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Slack webhook error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@slack_router.post("/events")
async def handle_global_events(request: Request, db: Session = Depends(get_session)):
    """Events for every workspace; the payload's team_id selects the tenant."""
    return await _handle_events(request, db, INGRESS_GLOBAL)


@slack_router.post("/{tenant_id}/events")
async def handle_tenant_events(tenant_id: str, request: Request, db: Session = Depends(get_session)):
    """Events for a single tenant addressed by path."""
    return await _handle_events(request, db, INGRESS_TENANT, tenant_id=tenant_id)
