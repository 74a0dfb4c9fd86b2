"""
Inbound Slack event dispatch.

Order of checks for a webhook request:
1. decode and classify the envelope; a url_verification handshake is
   answered immediately, before any tenant or signature exists,
2. resolve the owning tenant (path tenant id or payload team id),
3. verify the signature against that tenant's signing secret,
4. hand the classified event to its handler.
"""

from typing import Dict, Any, Optional, Union
from sqlalchemy.orm import Session
import json
import logging

from ..models.tenant import Tenant
from ..exceptions import BadRequestError, UnauthenticatedError, NotFoundError
from .signature import SignatureVerifier
from .events import (
    SlackEvent,
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
from .directory import TenantDirectory, TenantLookup, LookupStatus
from .users import UserDirectory
from .reconciler import ConversationReconciler
from .broadcaster import ConversationBroadcaster, APP_UNINSTALLED, USER_TOKENS_REVOKED

logger = logging.getLogger(__name__)

INGRESS_TENANT = "tenant"
INGRESS_GLOBAL = "global"


class EventDispatcher:
    """Authenticates webhook payloads and routes them to the reconciler."""

    def __init__(
        self,
        directory: TenantDirectory,
        users: UserDirectory,
        reconciler: ConversationReconciler,
        verifier: SignatureVerifier,
        broadcaster: Optional[ConversationBroadcaster] = None,
        ingress_mode: str = INGRESS_TENANT
    ):
        self.directory = directory
        self.users = users
        self.reconciler = reconciler
        self.verifier = verifier
        self.broadcaster = broadcaster
        self.ingress_mode = ingress_mode

    @classmethod
    def for_session(
        cls,
        db: Session,
        client_factory,
        verifier: SignatureVerifier,
        broadcaster: Optional[ConversationBroadcaster] = None,
        ingress_mode: str = INGRESS_TENANT
    ) -> "EventDispatcher":
        """Wire a dispatcher and its collaborators to one database session."""
        users = UserDirectory(db, client_factory)
        return cls(
            directory=TenantDirectory(db, client_factory, broadcaster),
            users=users,
            reconciler=ConversationReconciler(db, users, broadcaster, client_factory),
            verifier=verifier,
            broadcaster=broadcaster,
            ingress_mode=ingress_mode
        )

    async def dispatch(
        self,
        body: Union[bytes, str],
        timestamp: Optional[str],
        signature: Optional[str],
        tenant_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Process one webhook request body; raises SlackSyncError subclasses on rejection."""
        try:
            envelope = json.loads(body)
        except (TypeError, ValueError):
            raise BadRequestError("Invalid JSON in request body")

        if not isinstance(envelope, dict):
            raise BadRequestError("Request body must be a JSON object")

        event = parse_envelope(envelope)
        if isinstance(event, Handshake):
            logger.info("Answering Slack url_verification challenge")
            return {"challenge": event.challenge}

        tenant = self._resolve_tenant(envelope, tenant_id)

        if not self.verifier.verify(body, timestamp, signature, tenant.signing_secret):
            raise UnauthenticatedError("Invalid request signature")

        await self.route(tenant, event)
        return {"status": "ok"}

    def _resolve_tenant(self, envelope: Dict[str, Any], tenant_id: Optional[str]) -> Tenant:
        if self.ingress_mode == INGRESS_GLOBAL:
            team_id = envelope.get("team_id") or (envelope.get("event") or {}).get("team")
            if not team_id:
                raise BadRequestError("Missing team_id")
            lookup = self.directory.get_by_team_id(team_id, require_secret=True)
        else:
            if not tenant_id:
                raise BadRequestError("Missing tenant id")
            lookup = self.directory.get_tenant(tenant_id, require_secret=True)

        return _require_found(lookup)

    async def route(self, tenant: Tenant, event: SlackEvent) -> None:
        """Hand a verified event to the handler for its kind."""
        if isinstance(event, MessageEvent):
            await self.reconciler.handle_message(tenant, event)
        elif isinstance(event, ThreadReplyEvent):
            await self.reconciler.handle_thread_reply(tenant, event)
        elif isinstance(event, ReactionEvent):
            self.reconciler.handle_reaction(tenant, event)
        elif isinstance(event, AppUninstalledEvent):
            self._handle_app_uninstalled(tenant)
        elif isinstance(event, TokensRevokedEvent):
            self._handle_tokens_revoked(tenant, event)
        elif isinstance(event, IgnoredEvent):
            logger.debug(f"Ignoring Slack event for tenant {tenant.id}: {event.reason}")
        elif isinstance(event, UnknownEvent):
            logger.info(f"Unhandled Slack event type {event.event_type!r} for tenant {tenant.id}")
        else:
            logger.warning(f"Unexpected event variant {type(event).__name__} for tenant {tenant.id}")

    def _handle_app_uninstalled(self, tenant: Tenant) -> None:
        logger.info(f"Slack app uninstalled for tenant {tenant.id}")
        self.directory.clear_slack_config(tenant)
        if self.broadcaster is not None:
            self.broadcaster.publish(tenant.id, APP_UNINSTALLED, {"tenantId": tenant.id})

    def _handle_tokens_revoked(self, tenant: Tenant, event: TokensRevokedEvent) -> None:
        if event.bot_ids:
            logger.warning(f"Slack revoked bot token(s) {event.bot_ids} for tenant {tenant.id}")

        cleared = self.users.clear_tokens(tenant.id, event.user_ids)
        if cleared and self.broadcaster is not None:
            self.broadcaster.publish(tenant.id, USER_TOKENS_REVOKED, {"userIds": cleared})


def _require_found(lookup: TenantLookup) -> Tenant:
    if lookup.status == LookupStatus.NOT_FOUND:
        raise NotFoundError("Tenant not found")
    if lookup.status == LookupStatus.NOT_CONFIGURED:
        raise NotFoundError("Slack not configured for this tenant")
    return lookup.tenant
