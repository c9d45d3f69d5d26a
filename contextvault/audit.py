"""
Purge audit trail.

An event says who removed what and how much, never what the removed rows
contained: ids, a count, and a small metadata dict screened for
content-bearing keys.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import and_, or_

import contextvault.config as config
from contextvault.audit_constants import ACTOR_TENANT_ADMIN, PURGE_TARGET_TYPES
from contextvault.errors import ValidationIssue
from contextvault.models import AuditEvent, Tenant, User
from contextvault.services.memory_shared import coerce_id
from contextvault.validators import validate_limit

CONTENT_KEY_TOKENS = ("content", "summary", "title", "embedding", "conversation", "query")
MAX_METADATA_STRING_LENGTH = 500


def _screen_metadata(value, path: str) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            normalized = str(key).strip().lower().replace("-", "_")
            if any(token in normalized for token in CONTENT_KEY_TOKENS):
                raise ValueError(f"metadata key '{path}.{key}' may carry content")
            _screen_metadata(item, f"{path}.{key}")
    elif isinstance(value, (list, tuple)):
        for item in value:
            _screen_metadata(item, path)
    elif isinstance(value, str) and len(value) > MAX_METADATA_STRING_LENGTH:
        raise ValueError(f"metadata value at '{path}' is too long")


def record_purge(
    db,
    *,
    event_type: str,
    tenant: Tenant,
    target_ids: Sequence,
    count_affected: int,
    user: Optional[User] = None,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditEvent:
    """
    Add a purge event to the session.

    The caller commits, so the event lands in the same transaction as the
    delete it describes.
    """
    target_type = PURGE_TARGET_TYPES.get(event_type)
    if target_type is None:
        raise ValueError(f"unknown purge event type: {event_type!r}")
    if metadata is not None:
        _screen_metadata(metadata, "metadata")

    event = AuditEvent(
        created_at=datetime.utcnow(),
        event_type=event_type,
        actor_type=ACTOR_TENANT_ADMIN,
        actor_id=actor_id,
        tenant_slug=tenant.slug,
        user_external_id=user.external_id if user is not None else None,
        target_type=target_type,
        target_ids=[str(target_id) for target_id in target_ids],
        count_affected=count_affected,
        reason=reason,
        metadata_=metadata,
    )
    db.add(event)
    return event


def serialize_event(row: AuditEvent) -> dict:
    return {
        "event_id": str(row.event_id),
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "event_type": row.event_type,
        "actor_type": row.actor_type,
        "actor_id": row.actor_id,
        "tenant_slug": row.tenant_slug,
        "user_external_id": row.user_external_id,
        "target_type": row.target_type,
        "target_ids": row.target_ids,
        "count_affected": row.count_affected,
        "reason": row.reason,
        "metadata": row.metadata_,
    }


def list_audit_events(
    db,
    *,
    tenant_slug: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 100,
    cursor: Optional[str] = None,
) -> dict:
    """Newest events first; ``cursor`` is the last ``event_id`` of the previous page."""
    validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)

    query = db.query(AuditEvent)
    if tenant_slug:
        query = query.filter(AuditEvent.tenant_slug == tenant_slug)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)

    if cursor:
        anchor = db.query(AuditEvent).filter(AuditEvent.event_id == coerce_id(cursor, "cursor")).first()
        if anchor is None:
            raise ValidationIssue("cursor does not match any audit event", field="cursor", error_type="invalid_cursor")
        query = query.filter(
            or_(
                AuditEvent.created_at < anchor.created_at,
                and_(AuditEvent.created_at == anchor.created_at, AuditEvent.event_id < anchor.event_id),
            )
        )

    rows = query.order_by(AuditEvent.created_at.desc(), AuditEvent.event_id.desc()).limit(limit).all()
    return {
        "status": "ok",
        "count": len(rows),
        "events": [serialize_event(row) for row in rows],
        "next_cursor": str(rows[-1].event_id) if len(rows) == limit else None,
    }


__all__ = ["record_purge", "list_audit_events", "serialize_event"]
