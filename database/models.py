"""
SQLAlchemy ORM models for OAuth flow state, pending credentials and
saved user integrations.

Column types are kept dialect-neutral so the same models run on
PostgreSQL (production) and SQLite (tests).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class OAuthStateRecord(Base):
    """Single-use CSRF state issued at flow initiation."""

    __tablename__ = "oauth_states"

    state = Column(String(128), primary_key=True)
    provider = Column(String(32), nullable=False)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_oauth_states_expires_at", "expires_at"),)


class PendingCredentialRecord(Base):
    """Completed exchange waiting for its one-time retrieval."""

    __tablename__ = "oauth_credentials"

    credential_id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider = Column(String(32), nullable=False)
    payload = Column(Text, nullable=False)   # Fernet-encrypted PendingCredential JSON
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_oauth_credentials_expires_at", "expires_at"),)


class UserIntegration(Base):
    """Durable per-user connection to a provider."""

    __tablename__ = "user_integrations"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(128), nullable=False)
    integration_id = Column(String(128), nullable=False, default="")
    name = Column(String(256))
    provider = Column(String(32), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    token_type = Column(String(32), default="Bearer")
    expires_at = Column(DateTime(timezone=True))
    scopes = Column(JSON, default=list)
    user_data = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "integration_id", "provider", name="uq_user_integration"),
        Index("ix_user_integrations_user_id", "user_id"),
    )
