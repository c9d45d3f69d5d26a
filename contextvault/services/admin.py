"""
Admin listing and purge per tenant or user.

Listings return every row, including inactive and expired ones. Purges are
hard deletes that report how many rows went away and leave one audit event
behind when anything was removed.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import desc

from contextvault.audit import record_purge
from contextvault.audit_constants import (
    EVENT_TENANT_MEMORIES_PURGED,
    EVENT_TENANT_NOTES_PURGED,
    EVENT_TENANT_PURGED,
    EVENT_USER_MEMORIES_PURGED,
    EVENT_USER_PURGED,
)
from contextvault.models import MemoryItem, Tenant, TenantMemoryItem, TenantNote, User
from contextvault.services.memory_shared import (
    logger,
    serialize_memory,
    serialize_note,
    serialize_tenant_memory,
)

AUDIT_SAMPLE_SIZE = 50


def list_user_memories(db, *, user_id) -> list[dict]:
    rows = (
        db.query(MemoryItem)
        .filter(MemoryItem.user_id == user_id)
        .order_by(desc(MemoryItem.created_at))
        .all()
    )
    return [serialize_memory(row, include_raw=True) for row in rows]


def list_tenant_notes(db, *, tenant_id) -> list[dict]:
    rows = (
        db.query(TenantNote)
        .filter(TenantNote.tenant_id == tenant_id)
        .order_by(desc(TenantNote.priority), desc(TenantNote.created_at))
        .all()
    )
    return [serialize_note(row) for row in rows]


def list_tenant_memories(db, *, tenant_id) -> list[dict]:
    rows = (
        db.query(TenantMemoryItem)
        .filter(TenantMemoryItem.tenant_id == tenant_id)
        .order_by(desc(TenantMemoryItem.created_at))
        .all()
    )
    return [serialize_tenant_memory(row) for row in rows]


def _purge(
    db,
    query,
    id_column,
    *,
    event_type: str,
    tenant: Tenant,
    user: Optional[User] = None,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> dict:
    tenant_slug = tenant.slug
    ids = [str(row[0]) for row in query.with_entities(id_column).all()]
    if not ids:
        return {"deleted_count": 0}

    deleted = query.delete(synchronize_session=False)
    record_purge(
        db,
        event_type=event_type,
        tenant=tenant,
        user=user,
        target_ids=ids[:AUDIT_SAMPLE_SIZE],
        count_affected=deleted,
        actor_id=actor_id,
        reason=reason,
        metadata={"sample_size": min(len(ids), AUDIT_SAMPLE_SIZE)},
    )
    db.commit()
    logger.warning(
        "admin_purge",
        extra={
            "event_type": event_type,
            "tenant_slug": tenant_slug,
            "deleted_count": deleted,
        },
    )
    return {"deleted_count": deleted}


def purge_user_memories(db, *, tenant: Tenant, user: User, actor_id=None, reason=None) -> dict:
    return _purge(
        db,
        db.query(MemoryItem).filter(MemoryItem.user_id == user.id),
        MemoryItem.id,
        event_type=EVENT_USER_MEMORIES_PURGED,
        tenant=tenant,
        user=user,
        actor_id=actor_id,
        reason=reason,
    )


def purge_tenant_notes(db, *, tenant: Tenant, actor_id=None, reason=None) -> dict:
    return _purge(
        db,
        db.query(TenantNote).filter(TenantNote.tenant_id == tenant.id),
        TenantNote.id,
        event_type=EVENT_TENANT_NOTES_PURGED,
        tenant=tenant,
        actor_id=actor_id,
        reason=reason,
    )


def purge_tenant_memories(db, *, tenant: Tenant, actor_id=None, reason=None) -> dict:
    return _purge(
        db,
        db.query(TenantMemoryItem).filter(TenantMemoryItem.tenant_id == tenant.id),
        TenantMemoryItem.id,
        event_type=EVENT_TENANT_MEMORIES_PURGED,
        tenant=tenant,
        actor_id=actor_id,
        reason=reason,
    )


def purge_user(db, *, tenant: Tenant, user: User, actor_id=None, reason=None) -> dict:
    """Delete a user; memories and profile go with it through the cascade."""
    return _purge(
        db,
        db.query(User).filter(User.id == user.id),
        User.id,
        event_type=EVENT_USER_PURGED,
        tenant=tenant,
        user=user,
        actor_id=actor_id,
        reason=reason,
    )


def purge_tenant(db, *, tenant: Tenant, actor_id=None, reason=None) -> dict:
    """Delete a tenant and, through the cascade, everything it owns."""
    return _purge(
        db,
        db.query(Tenant).filter(Tenant.id == tenant.id),
        Tenant.id,
        event_type=EVENT_TENANT_PURGED,
        tenant=tenant,
        actor_id=actor_id,
        reason=reason,
    )
