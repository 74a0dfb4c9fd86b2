"""
Database models for the Slack sync service.
"""

from .base import Base
from .tenant import Tenant
from .conversation import Conversation
from .slack_user import SlackUser

__all__ = ["Base", "Tenant", "Conversation", "SlackUser"]
