"""
Services for the Slack sync engine.
"""

from .slack_api import SlackApiClient, make_client_factory
from .signature import SignatureVerifier
from .broadcaster import ConversationBroadcaster
from .directory import TenantDirectory
from .users import UserDirectory
from .reconciler import ConversationReconciler
from .messaging import MessagingGateway, PostResult
from .dispatcher import EventDispatcher

__all__ = [
    "SlackApiClient",
    "make_client_factory",
    "SignatureVerifier",
    "ConversationBroadcaster",
    "TenantDirectory",
    "UserDirectory",
    "ConversationReconciler",
    "MessagingGateway",
    "PostResult",
    "EventDispatcher",
]
