"""
ContextVault Database Models
PostgreSQL + pgvector schema
"""

from datetime import datetime
import uuid
from sqlalchemy import (
    Column, Integer, SmallInteger, String, Text, Boolean,
    DateTime, ForeignKey, CheckConstraint, Index, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship, declarative_base

import contextvault.config as config

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE
VECTOR_BACKEND_EFFECTIVE = config.VECTOR_BACKEND_EFFECTIVE

try:
    from pgvector.sqlalchemy import Vector as PgVector
    PGVECTOR_AVAILABLE = True
except ImportError:
    PgVector = None
    PGVECTOR_AVAILABLE = False

PGVECTOR_ENABLED = (
    DB_BACKEND_EFFECTIVE == "postgres"
    and VECTOR_BACKEND_EFFECTIVE == "pgvector"
    and PGVECTOR_AVAILABLE
)


def embedding_column_type(dimensions: int):
    if PGVECTOR_ENABLED:
        return PgVector(dimensions)
    return JSON


JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON
UUID_TYPE = UUID(as_uuid=True) if DB_BACKEND_EFFECTIVE == "postgres" else String(36)


def _uuid_default() -> str | uuid.UUID:
    value = uuid.uuid4()
    return value if DB_BACKEND_EFFECTIVE == "postgres" else str(value)


Base = declarative_base()


# =============================================================================
# Identity
# =============================================================================


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    settings = Column(JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="tenant", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("slug", name="uq_tenants_slug"),
    )


class User(Base):
    __tablename__ = "users"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    tenant_id = Column(UUID_TYPE, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    external_id = Column(String(255), nullable=False)
    display_name = Column(String(255))
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_users_tenant_external_id"),
        Index("ix_users_tenant_id", "tenant_id"),
    )


# =============================================================================
# User-scoped memory
# =============================================================================


class MemoryItem(Base):
    __tablename__ = "memories"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    user_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    raw_conversation = Column(JSON_TYPE)
    embedding = Column(embedding_column_type(config.USER_EMBEDDING_DIM), nullable=False)
    memory_type = Column(String(50), nullable=False)
    importance = Column(SmallInteger, default=config.DEFAULT_IMPORTANCE, nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    expires_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("importance >= 1 AND importance <= 10", name="check_memories_importance"),
        Index("ix_memories_user_id", "user_id"),
        Index("ix_memories_memory_type", "memory_type"),
        Index("ix_memories_created_at", "created_at"),
    )


class ProfileSummary(Base):
    __tablename__ = "user_profiles"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    user_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    summary = Column(Text, nullable=False, default="")
    summary_embedding = Column(embedding_column_type(config.USER_EMBEDDING_DIM), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_profiles_user_id"),
    )


# =============================================================================
# Tenant-scoped knowledge
# =============================================================================


class TenantNote(Base):
    __tablename__ = "tenant_notes"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    tenant_id = Column(UUID_TYPE, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    category = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(embedding_column_type(config.TENANT_EMBEDDING_DIM), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(SmallInteger, default=config.DEFAULT_PRIORITY, nullable=False)
    tags = Column(JSON_TYPE, default=list)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_tenant_notes_tenant_id", "tenant_id"),
        Index("ix_tenant_notes_category", "category"),
    )


class TenantMemoryItem(Base):
    __tablename__ = "tenant_memories"

    id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    tenant_id = Column(UUID_TYPE, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(embedding_column_type(config.TENANT_EMBEDDING_DIM), nullable=False)
    memory_type = Column(String(50), nullable=False)
    importance = Column(SmallInteger, default=config.DEFAULT_IMPORTANCE, nullable=False)
    # Provenance labels only: no foreign key, no cascade.
    source_user_id = Column(UUID_TYPE)
    source_memory_id = Column(UUID_TYPE)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    expires_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("importance >= 1 AND importance <= 10", name="check_tenant_memories_importance"),
        Index("ix_tenant_memories_tenant_id", "tenant_id"),
        Index("ix_tenant_memories_memory_type", "memory_type"),
    )


# =============================================================================
# Audit Events
# =============================================================================


class AuditEvent(Base):
    __tablename__ = "audit_events"

    event_id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    event_type = Column(String(100), nullable=False)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255))
    tenant_slug = Column(String(100))
    user_external_id = Column(String(255))
    target_type = Column(String(50), nullable=False)
    target_ids = Column(JSON_TYPE, nullable=False)
    count_affected = Column(Integer)
    reason = Column(Text)
    metadata_ = Column("metadata", JSON_TYPE)

    __table_args__ = (
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_event_type", "event_type"),
        Index("ix_audit_events_tenant_slug", "tenant_slug"),
    )


__all__ = [
    "Base",
    "Tenant",
    "User",
    "MemoryItem",
    "ProfileSummary",
    "TenantNote",
    "TenantMemoryItem",
    "AuditEvent",
    "PGVECTOR_AVAILABLE",
    "PGVECTOR_ENABLED",
]
