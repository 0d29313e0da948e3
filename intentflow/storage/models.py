"""
SQLAlchemy Models for Conversation Storage

Async-compatible SQLAlchemy 2.0 ORM model holding one row per conversation.
History and agent context are stored as JSON documents.

Designed to work with:
- SQLite (via aiosqlite)
- PostgreSQL (via asyncpg)
- MySQL (via aiomysql)

JSON column handling:
- PostgreSQL: Native JSONB
- SQLite/MySQL: TEXT with JSON serialization
"""

import json
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


# =============================================================================
# Custom Types
# =============================================================================

class JSONType(TypeDecorator):
    """
    Platform-agnostic JSON column.

    Uses JSONB on PostgreSQL, TEXT+JSON on SQLite/MySQL.
    """
    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return json.dumps(value, ensure_ascii=False)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            return json.loads(value)
        return value


# =============================================================================
# Base
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Conversation Model
# =============================================================================

class ConversationModel(Base):
    """Persisted conversation state."""
    __tablename__ = "intentflow_conversations"

    conversation_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    current_intent: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # JSON documents
    entities: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    history: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)
    agent_context: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)

    last_activity: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_conversations_user_activity", "user_id", "last_activity"),
    )
