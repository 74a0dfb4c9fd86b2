"""
Slack user directory cache.
"""

from sqlalchemy import Column, String, DateTime, Text, Boolean, JSON, UniqueConstraint
from datetime import datetime

from .base import Base


class SlackUser(Base):
    """Cached Slack profile, plus a user token when the user granted one."""
    
    __tablename__ = "slack_users"
    
    id = Column(String, primary_key=True)  # "{tenant_id}-{slack_user_id}"
    tenant_id = Column(String, nullable=False, index=True)
    slack_user_id = Column(String, nullable=False)
    real_name = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    profile_image = Column(String, nullable=True)
    title = Column(String, nullable=True)
    is_bot = Column(Boolean, default=False, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_owner = Column(Boolean, default=False, nullable=False)
    timezone = Column(String, nullable=True)
    
    # Present only while the user has authorized posting as themselves
    user_token = Column(Text, nullable=True)
    scopes = Column(JSON, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    
    is_active = Column(Boolean, default=True, nullable=False)
    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        UniqueConstraint('tenant_id', 'slack_user_id', name='uq_slack_users_tenant_user'),
    )
    
    @staticmethod
    def make_id(tenant_id: str, slack_user_id: str) -> str:
        return f"{tenant_id}-{slack_user_id}"
    
    @property
    def name(self) -> str:
        """Best available name for display."""
        return self.display_name or self.real_name or self.slack_user_id
    
    @property
    def token_expired(self) -> bool:
        return bool(self.token_expires_at and self.token_expires_at <= datetime.utcnow())
    
    def clear_token(self) -> None:
        self.user_token = None
        self.scopes = None
        self.token_expires_at = None
    
    def to_dict(self):
        """Serialize without the token itself."""
        return {
            "id": self.id,
            "slackUserId": self.slack_user_id,
            "realName": self.real_name,
            "displayName": self.display_name,
            "email": self.email,
            "profileImage": self.profile_image,
            "title": self.title,
            "isBot": self.is_bot,
            "isAdmin": self.is_admin,
            "isOwner": self.is_owner,
            "timezone": self.timezone,
            "hasUserToken": bool(self.user_token),
            "tokenExpired": self.token_expired,
            "scopes": self.scopes or [],
            "isActive": self.is_active,
            "lastSeenAt": self.last_seen_at.isoformat() if self.last_seen_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
    
    def __repr__(self):
        return f"<SlackUser(id='{self.id}', has_token={bool(self.user_token)})>"
