"""
Slack user directory.

Profiles are fetched from Slack once and cached in slack_users. Passive
lookups only refresh last_seen_at; token fields change only through the
token management methods.
"""

from datetime import datetime
from typing import Dict, Any, Optional, List
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from ..models.tenant import Tenant
from ..models.slack_user import SlackUser
from ..exceptions import NotFoundError, UpstreamError
from .slack_api import SlackClientFactory

logger = logging.getLogger(__name__)


class UserDirectory:
    """Cache-first resolver for Slack user profiles."""

    def __init__(self, db: Session, client_factory: SlackClientFactory):
        self.db = db
        self.client_factory = client_factory

    def get_user(self, tenant_id: str, slack_user_id: str) -> Optional[SlackUser]:
        return self.db.query(SlackUser).filter(
            SlackUser.tenant_id == tenant_id,
            SlackUser.slack_user_id == slack_user_id
        ).populate_existing().first()

    async def resolve(self, tenant: Tenant, slack_user_id: str) -> Optional[SlackUser]:
        """Return the cached user, fetching and caching the profile on a miss."""
        if not slack_user_id:
            return None

        slack_user = self.get_user(tenant.id, slack_user_id)
        if slack_user is not None:
            slack_user.last_seen_at = datetime.utcnow()
            self.db.commit()
            return slack_user

        profile = await self._fetch_profile(tenant, slack_user_id)
        if profile is None:
            return None

        return self._create_user(tenant.id, slack_user_id, profile)

    async def _fetch_profile(self, tenant: Tenant, slack_user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.client_factory(tenant.bot_token).users_info(slack_user_id)
        except UpstreamError as e:
            logger.warning(f"Could not fetch Slack profile for {slack_user_id} in tenant {tenant.id}: {e}")
            return None

    def _create_user(self, tenant_id: str, slack_user_id: str, profile: Dict[str, Any]) -> SlackUser:
        slack_user = SlackUser(
            id=SlackUser.make_id(tenant_id, slack_user_id),
            tenant_id=tenant_id,
            slack_user_id=slack_user_id,
            real_name=profile.get("real_name"),
            display_name=profile.get("display_name"),
            email=profile.get("email"),
            profile_image=profile.get("image_72"),
            title=profile.get("title"),
            is_bot=profile.get("is_bot", False),
            is_admin=profile.get("is_admin", False),
            is_owner=profile.get("is_owner", False),
            timezone=profile.get("tz"),
            is_active=True,
            last_seen_at=datetime.utcnow()
        )
        self.db.add(slack_user)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created the row while the profile was in flight
            self.db.rollback()
            existing = self.get_user(tenant_id, slack_user_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Created Slack user record {slack_user.name} ({slack_user_id}) for tenant {tenant_id}")
        return slack_user

    async def grant_user_token(
        self,
        tenant: Tenant,
        slack_user_id: str,
        user_token: str,
        scopes: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None
    ) -> SlackUser:
        """Store a token the user granted for posting as themselves."""
        slack_user = self.get_user(tenant.id, slack_user_id)
        if slack_user is None:
            profile = await self._fetch_profile(tenant, slack_user_id)
            if profile is None:
                raise NotFoundError(f"Slack user {slack_user_id} not found")
            slack_user = self._create_user(tenant.id, slack_user_id, profile)

        slack_user.user_token = user_token
        slack_user.scopes = list(scopes or [])
        slack_user.token_expires_at = expires_at
        slack_user.is_active = True
        slack_user.last_seen_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"Stored user token for {slack_user_id} in tenant {tenant.id} (scopes: {slack_user.scopes})")
        return slack_user

    def remove_token(self, tenant_id: str, slack_user_id: str) -> SlackUser:
        slack_user = self._require_user(tenant_id, slack_user_id)
        slack_user.clear_token()
        self.db.commit()
        logger.info(f"Removed user token for {slack_user_id} in tenant {tenant_id}")
        return slack_user

    def clear_tokens(self, tenant_id: str, slack_user_ids: List[str]) -> List[str]:
        """Clear tokens Slack reports as revoked; returns the ids that had one."""
        if not slack_user_ids:
            return []

        cleared = []
        for slack_user in self.db.query(SlackUser).filter(
            SlackUser.tenant_id == tenant_id,
            SlackUser.slack_user_id.in_(slack_user_ids)
        ).all():
            if slack_user.user_token:
                slack_user.clear_token()
                cleared.append(slack_user.slack_user_id)
        self.db.commit()

        if cleared:
            logger.info(f"Cleared revoked tokens for {len(cleared)} user(s) in tenant {tenant_id}")
        return cleared

    def toggle_active(self, tenant_id: str, slack_user_id: str) -> SlackUser:
        slack_user = self._require_user(tenant_id, slack_user_id)
        slack_user.is_active = not slack_user.is_active
        self.db.commit()
        return slack_user

    def _require_user(self, tenant_id: str, slack_user_id: str) -> SlackUser:
        slack_user = self.get_user(tenant_id, slack_user_id)
        if slack_user is None:
            raise NotFoundError("Slack user not found")
        return slack_user

    def list_users(self, tenant_id: str, include_inactive: bool = False, search: Optional[str] = None) -> Dict[str, Any]:
        """List a tenant's users, most recently seen first, with summary stats."""
        query = self.db.query(SlackUser).filter(SlackUser.tenant_id == tenant_id)

        if not include_inactive:
            query = query.filter(SlackUser.is_active.is_(True))

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                SlackUser.real_name.ilike(pattern),
                SlackUser.display_name.ilike(pattern),
                SlackUser.email.ilike(pattern)
            ))

        users = query.order_by(
            SlackUser.last_seen_at.desc(),
            SlackUser.real_name.asc()
        ).all()

        return {
            "users": [user.to_dict() for user in users],
            "stats": {
                "total": len(users),
                "withTokens": sum(1 for user in users if user.user_token),
                "bots": sum(1 for user in users if user.is_bot),
                "admins": sum(1 for user in users if user.is_admin),
                "active": sum(1 for user in users if user.is_active),
            }
        }
