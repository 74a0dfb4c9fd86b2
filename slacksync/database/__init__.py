"""
Database connection and session management for the Slack sync service.
"""

from .connection import get_database_url, create_engine, get_engine, get_session, init_database

__all__ = ["get_database_url", "create_engine", "get_engine", "get_session", "init_database"]
