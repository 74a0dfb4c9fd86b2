"""
Tenant model holding a workspace's Slack installation.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean, JSON
from datetime import datetime

from .base import Base


class Tenant(Base):
    """A customer workspace; maps 1:1 to a Slack team once connected."""
    
    __tablename__ = "tenants"
    
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    # bot_token, signing_secret, team_id, team_name, installed_by, bot_user_id
    slack_config = Column(JSON, nullable=True)
    # Mirror of slack_config["team_id"] so global ingress can look it up
    slack_team_id = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    @property
    def bot_token(self):
        return (self.slack_config or {}).get("bot_token")
    
    @property
    def signing_secret(self):
        return (self.slack_config or {}).get("signing_secret")
    
    @property
    def is_slack_connected(self) -> bool:
        config = self.slack_config or {}
        return bool(config.get("bot_token") and config.get("team_id"))
    
    def __repr__(self):
        return f"<Tenant(id='{self.id}', slug='{self.slug}', team_id='{self.slack_team_id}')>"
