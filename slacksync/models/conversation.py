"""
Conversation model for synchronized Slack messages.

A thread reply is stored twice: as its own row whose thread_ts points at
the parent id, and as an entry in the parent's thread_replies list.
"""

from sqlalchemy import Column, String, DateTime, Text, JSON, Index
from datetime import datetime

from .base import Base


class Conversation(Base):
    """A root message or thread reply, keyed by its Slack ts."""
    
    __tablename__ = "conversations"
    
    id = Column(String, primary_key=True)  # Slack message ts
    tenant_id = Column(String, primary_key=True, index=True)
    channel_id = Column(String, nullable=False)
    channel_name = Column(String, nullable=True)
    content = Column(Text, nullable=False, default="")
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=True)
    # [{"name": ..., "users": [...], "count": len(users)}]
    reactions = Column(JSON, nullable=False, default=list)
    # [{"ts", "user", "user_name", "text", "type", "subtype", "thread_ts"}]
    thread_replies = Column(JSON, nullable=False, default=list)
    thread_ts = Column(String, nullable=True)  # Parent id, set only on replies
    slack_timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_conversations_tenant_thread', 'tenant_id', 'thread_ts'),
    )
    
    def to_dict(self):
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "channelId": self.channel_id,
            "channelName": self.channel_name,
            "content": self.content,
            "userId": self.user_id,
            "userName": self.user_name,
            "reactions": list(self.reactions or []),
            "threadReplies": list(self.thread_replies or []),
            "threadTs": self.thread_ts,
            "slackTimestamp": self.slack_timestamp.isoformat() if self.slack_timestamp else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
    
    def __repr__(self):
        return f"<Conversation(id='{self.id}', tenant_id='{self.tenant_id}', thread_ts='{self.thread_ts}')>"
