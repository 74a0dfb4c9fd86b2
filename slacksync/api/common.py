"""
Helpers shared by the API routers.
"""

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session
import logging

from ..config import get_config
from ..exceptions import SlackSyncError
from ..services.broadcaster import ConversationBroadcaster
from ..services.slack_api import SlackClientFactory
from ..services.signature import SignatureVerifier
from ..services.directory import TenantDirectory
from ..services.users import UserDirectory
from ..services.reconciler import ConversationReconciler
from ..services.messaging import MessagingGateway

logger = logging.getLogger(__name__)


def to_http_exception(error: SlackSyncError) -> HTTPException:
    """Map a service error onto the matching HTTP status."""
    if error.status_code >= 500 and error.status_code != 502:
        logger.error(f"Internal error: {error}")
        return HTTPException(status_code=error.status_code, detail="Internal server error")
    return HTTPException(status_code=error.status_code, detail=str(error))


def get_broadcaster(request: Request) -> ConversationBroadcaster:
    return request.app.state.broadcaster


def get_client_factory(request: Request) -> SlackClientFactory:
    return request.app.state.slack_client_factory


def get_verifier(request: Request) -> SignatureVerifier:
    return request.app.state.signature_verifier


def build_reconciler(request: Request, db: Session) -> ConversationReconciler:
    client_factory = get_client_factory(request)
    users = UserDirectory(db, client_factory)
    return ConversationReconciler(db, users, get_broadcaster(request), client_factory)


def build_directory(request: Request, db: Session) -> TenantDirectory:
    return TenantDirectory(db, get_client_factory(request), get_broadcaster(request))


def build_gateway(request: Request, db: Session) -> MessagingGateway:
    """Wire a messaging gateway for one request."""
    slack_config = get_config().slack
    reconciler = build_reconciler(request, db)
    return MessagingGateway(
        db,
        users=reconciler.users,
        reconciler=reconciler,
        client_factory=reconciler.client_factory,
        broadcaster=reconciler.broadcaster,
        app_name=slack_config.app_name,
        fallback_on_any_error=slack_config.fallback_on_any_error
    )
