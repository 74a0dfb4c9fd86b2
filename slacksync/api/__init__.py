"""
API endpoints for the Slack sync service.
"""

from .main import create_app
from .slack import slack_router
from .tenants import tenants_router
from .conversations import conversations_router

__all__ = ["create_app", "slack_router", "tenants_router", "conversations_router"]
