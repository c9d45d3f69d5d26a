"""Initial schema: identity, memories, profiles, tenant knowledge, audit.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

import contextvault.config as config


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _embedding_type(is_postgres: bool, dimensions: int):
    if is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from pgvector.sqlalchemy import Vector

        return Vector(dimensions)
    return sa.JSON


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    json_type = postgresql.JSONB if is_postgres else sa.JSON
    uuid_type = postgresql.UUID(as_uuid=True) if is_postgres else sa.String(length=36)
    user_vector = _embedding_type(is_postgres, config.USER_EMBEDDING_DIM)
    tenant_vector = _embedding_type(is_postgres, config.TENANT_EMBEDDING_DIM)

    op.create_table(
        "tenants",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("settings", json_type),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("slug", name="uq_tenants_slug"),
    )

    op.create_table(
        "users",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "tenant_id",
            uuid_type,
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255)),
        sa.Column("metadata", json_type),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("tenant_id", "external_id", name="uq_users_tenant_external_id"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    op.create_table(
        "memories",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "user_id",
            uuid_type,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("raw_conversation", json_type),
        sa.Column("embedding", user_vector, nullable=False),
        sa.Column("memory_type", sa.String(length=50), nullable=False),
        sa.Column("importance", sa.SmallInteger(), nullable=False, server_default="5"),
        sa.Column("metadata", json_type),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("importance >= 1 AND importance <= 10", name="check_memories_importance"),
    )
    op.create_index("ix_memories_user_id", "memories", ["user_id"])
    op.create_index("ix_memories_memory_type", "memories", ["memory_type"])
    op.create_index("ix_memories_created_at", "memories", ["created_at"])

    op.create_table(
        "user_profiles",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "user_id",
            uuid_type,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("summary_embedding", user_vector, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("user_id", name="uq_user_profiles_user_id"),
    )

    op.create_table(
        "tenant_notes",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "tenant_id",
            uuid_type,
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", tenant_vector, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("priority", sa.SmallInteger(), nullable=False, server_default="5"),
        sa.Column("tags", json_type),
        sa.Column("metadata", json_type),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_tenant_notes_tenant_id", "tenant_notes", ["tenant_id"])
    op.create_index("ix_tenant_notes_category", "tenant_notes", ["category"])

    op.create_table(
        "tenant_memories",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "tenant_id",
            uuid_type,
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", tenant_vector, nullable=False),
        sa.Column("memory_type", sa.String(length=50), nullable=False),
        sa.Column("importance", sa.SmallInteger(), nullable=False, server_default="5"),
        sa.Column("source_user_id", uuid_type),
        sa.Column("source_memory_id", uuid_type),
        sa.Column("metadata", json_type),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "importance >= 1 AND importance <= 10",
            name="check_tenant_memories_importance",
        ),
    )
    op.create_index("ix_tenant_memories_tenant_id", "tenant_memories", ["tenant_id"])
    op.create_index("ix_tenant_memories_memory_type", "tenant_memories", ["memory_type"])

    op.create_table(
        "audit_events",
        sa.Column("event_id", uuid_type, primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=255)),
        sa.Column("tenant_slug", sa.String(length=100)),
        sa.Column("user_external_id", sa.String(length=255)),
        sa.Column("target_type", sa.String(length=50), nullable=False),
        sa.Column("target_ids", json_type, nullable=False),
        sa.Column("count_affected", sa.Integer()),
        sa.Column("reason", sa.Text()),
        sa.Column("metadata", json_type),
    )
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_tenant_slug", "audit_events", ["tenant_slug"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_tenant_slug", table_name="audit_events")
    op.drop_index("ix_audit_events_event_type", table_name="audit_events")
    op.drop_index("ix_audit_events_created_at", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_tenant_memories_memory_type", table_name="tenant_memories")
    op.drop_index("ix_tenant_memories_tenant_id", table_name="tenant_memories")
    op.drop_table("tenant_memories")
    op.drop_index("ix_tenant_notes_category", table_name="tenant_notes")
    op.drop_index("ix_tenant_notes_tenant_id", table_name="tenant_notes")
    op.drop_table("tenant_notes")
    op.drop_table("user_profiles")
    op.drop_index("ix_memories_created_at", table_name="memories")
    op.drop_index("ix_memories_memory_type", table_name="memories")
    op.drop_index("ix_memories_user_id", table_name="memories")
    op.drop_table("memories")
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_table("users")
    op.drop_table("tenants")
