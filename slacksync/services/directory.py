"""
Tenant and credential directory.

Lookups never raise for a missing tenant; they return a TenantLookup whose
status says whether the tenant was found and whether it is configured
for Slack.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from ..models.tenant import Tenant
from ..models.conversation import Conversation
from ..models.slack_user import SlackUser
from ..exceptions import NotFoundError, UpstreamError, SlackSyncError
from .slack_api import SlackClientFactory
from .broadcaster import ConversationBroadcaster, APP_UNINSTALLED

logger = logging.getLogger(__name__)

SLACK_CONFIG_KEYS = ("bot_token", "signing_secret", "team_id", "team_name", "installed_by", "bot_user_id")


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"


@dataclass
class TenantLookup:
    status: LookupStatus
    tenant: Optional[Tenant] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


class TenantDirectory:
    """Resolves tenants and their Slack credentials."""

    def __init__(
        self,
        db: Session,
        client_factory: Optional[SlackClientFactory] = None,
        broadcaster: Optional[ConversationBroadcaster] = None
    ):
        self.db = db
        self.client_factory = client_factory
        self.broadcaster = broadcaster

    def get_tenant(self, tenant_id: str, require_secret: bool = False) -> TenantLookup:
        """Find an active tenant by id."""
        tenant = self.db.query(Tenant).filter(
            Tenant.id == tenant_id,
            Tenant.is_active.is_(True)
        ).first()
        return self._lookup(tenant, require_secret)

    def get_by_team_id(self, team_id: str, require_secret: bool = False) -> TenantLookup:
        """Find the active tenant connected to a Slack team."""
        tenant = self.db.query(Tenant).filter(
            Tenant.slack_team_id == team_id,
            Tenant.is_active.is_(True)
        ).first()
        return self._lookup(tenant, require_secret)

    def _lookup(self, tenant: Optional[Tenant], require_secret: bool) -> TenantLookup:
        if tenant is None:
            return TenantLookup(LookupStatus.NOT_FOUND)

        config = tenant.slack_config or {}
        if not config.get("bot_token") or (require_secret and not config.get("signing_secret")):
            return TenantLookup(LookupStatus.NOT_CONFIGURED, tenant)

        return TenantLookup(LookupStatus.FOUND, tenant)

    def require_connected(self, tenant_id: str) -> Tenant:
        """Return the tenant or raise NotFoundError when it cannot use Slack."""
        lookup = self.get_tenant(tenant_id)
        if lookup.status == LookupStatus.NOT_FOUND:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        if lookup.status == LookupStatus.NOT_CONFIGURED:
            raise NotFoundError("Slack not configured for this tenant")
        return lookup.tenant

    def update_slack_config(self, tenant_id: str, slack_config: Dict[str, Any]) -> Tenant:
        """Merge new installation values into a tenant's Slack config."""
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        merged = dict(tenant.slack_config or {})
        merged.update({key: value for key, value in slack_config.items() if key in SLACK_CONFIG_KEYS})
        tenant.slack_config = merged
        tenant.slack_team_id = merged.get("team_id")
        self.db.commit()

        logger.info(f"Updated Slack config for tenant {tenant_id} (team {tenant.slack_team_id})")
        return tenant

    def clear_slack_config(self, tenant: Tenant) -> None:
        """Drop the whole Slack config in one commit and confirm it is gone."""
        tenant.slack_config = None
        tenant.slack_team_id = None
        self.db.commit()

        self.db.expire(tenant)
        if tenant.slack_config is not None or tenant.slack_team_id is not None:
            raise SlackSyncError(f"Slack config for tenant {tenant.id} still present after clearing")

        logger.info(f"Cleared Slack config for tenant {tenant.id}")

    def status(self, tenant_id: str) -> Dict[str, Any]:
        """Report connection state without exposing any token."""
        lookup = self.get_tenant(tenant_id)
        if lookup.status == LookupStatus.NOT_FOUND:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        tenant = lookup.tenant
        config = tenant.slack_config
        return {
            "tenantId": tenant.id,
            "tenantName": tenant.name,
            "isSlackConnected": tenant.is_slack_connected,
            "slackConfig": {
                "hasToken": bool(config.get("bot_token")),
                "teamId": config.get("team_id"),
                "teamName": config.get("team_name"),
            } if config else None,
        }

    async def disconnect(self, tenant_id: str) -> Dict[str, Any]:
        """
        Uninstall Slack for a tenant.

        The remote token revoke is best-effort; the local reset (synced data
        and config) always runs afterwards.
        """
        tenant = self.require_connected(tenant_id)
        bot_token = tenant.bot_token
        app_uninstalled = False

        try:
            if self.client_factory is not None:
                await self.client_factory(bot_token).auth_revoke()
                app_uninstalled = True
        except UpstreamError as e:
            logger.warning(f"Failed to revoke bot token for tenant {tenant_id}, continuing with local cleanup: {e}")
        finally:
            self.purge_tenant_data(tenant)

        if self.broadcaster is not None:
            self.broadcaster.publish(tenant.id, APP_UNINSTALLED, {"tenantId": tenant.id})

        logger.info(f"Disconnected Slack for tenant {tenant_id}")
        return {
            "appUninstalled": app_uninstalled,
            "dataCleared": True,
            "tenantReset": True,
        }

    def purge_tenant_data(self, tenant: Tenant) -> None:
        """Delete synced rows for a tenant, then clear its Slack config."""
        try:
            conversations = self.db.query(Conversation).filter(Conversation.tenant_id == tenant.id).delete()
            users = self.db.query(SlackUser).filter(SlackUser.tenant_id == tenant.id).delete()
            self.db.commit()
            logger.info(f"Deleted {conversations} conversations and {users} Slack users for tenant {tenant.id}")
        except SQLAlchemyError as e:
            logger.error(f"Error clearing Slack data for tenant {tenant.id}: {e}")
            self.db.rollback()

        self.clear_slack_config(tenant)
