"""
Tenant notes: curated, manually authored tenant-wide knowledge.

Notes carry a category, a priority, and an activation flag. Only active,
unexpired notes are ever returned by reads.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import desc

from contextvault.models import TenantNote
from contextvault.services.memory_shared import (
    _normalize_timestamp,
    _validate_metadata,
    _validate_optional_text,
    _validate_required_text,
    _validate_score,
    _validate_string_list,
    DEFAULT_PRIORITY,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    MAX_CATEGORY_LENGTH,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TAG_ITEMS,
    MAX_TEXT_LENGTH,
    logger,
    not_expired,
    rank_by_similarity,
    serialize_note,
    validate_search_inputs,
    with_similarity,
)


def _active_filters():
    return [TenantNote.is_active.is_(True), not_expired(TenantNote)]


def add_note(
    db,
    embedder,
    *,
    tenant_id,
    category: str,
    title: str,
    content: str,
    tags: Optional[Sequence[str]] = None,
    priority: Optional[int] = None,
    metadata: Optional[dict] = None,
    expires_at: Optional[datetime] = None,
) -> dict:
    _validate_required_text(category, "category", MAX_CATEGORY_LENGTH)
    _validate_required_text(title, "title", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(content, "content", MAX_TEXT_LENGTH)
    _validate_string_list(tags, "tags", MAX_TAG_ITEMS, MAX_SHORT_TEXT_LENGTH)
    _validate_score(priority, "priority")
    _validate_metadata(metadata, "metadata")
    expires_at = _normalize_timestamp(expires_at, "expires_at")

    embedding = embedder.embed(content)

    note = TenantNote(
        tenant_id=tenant_id,
        category=category,
        title=title,
        content=content,
        embedding=embedding,
        tags=list(tags or []),
        priority=priority if priority is not None else DEFAULT_PRIORITY,
        metadata_=metadata or {},
        expires_at=expires_at,
        is_active=True,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    logger.info(
        "memory_added",
        extra={"scope": "tenant_note", "memory_id": str(note.id), "category": category},
    )
    return serialize_note(note)


def search_notes(
    db,
    embedder,
    *,
    tenant_id,
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
    category: Optional[str] = None,
    threshold: float = DEFAULT_SEARCH_THRESHOLD,
) -> list[dict]:
    validate_search_inputs(query, limit, threshold)
    _validate_optional_text(category, "category", MAX_CATEGORY_LENGTH)
    extra_filters = _active_filters()
    if category:
        extra_filters.append(TenantNote.category == category)
    query_embedding = embedder.embed(query)
    ranked = rank_by_similarity(
        db,
        TenantNote,
        [TenantNote.tenant_id == tenant_id],
        query_embedding,
        limit=limit,
        threshold=threshold,
        extra_filters=extra_filters,
    )
    return [with_similarity(serialize_note(row), score) for row, score in ranked]


def get_notes_by_category(db, *, tenant_id, category: str) -> list[dict]:
    _validate_required_text(category, "category", MAX_CATEGORY_LENGTH)
    rows = (
        db.query(TenantNote)
        .filter(TenantNote.tenant_id == tenant_id)
        .filter(TenantNote.category == category)
        .filter(*_active_filters())
        .order_by(desc(TenantNote.priority))
        .all()
    )
    return [serialize_note(row) for row in rows]


def get_all_notes(db, *, tenant_id) -> list[dict]:
    rows = (
        db.query(TenantNote)
        .filter(TenantNote.tenant_id == tenant_id)
        .filter(*_active_filters())
        .order_by(desc(TenantNote.priority))
        .all()
    )
    return [serialize_note(row) for row in rows]


def _get_note(db, tenant_id, note_id) -> Optional[TenantNote]:
    return (
        db.query(TenantNote)
        .filter(TenantNote.tenant_id == tenant_id)
        .filter(TenantNote.id == note_id)
        .first()
    )


def set_note_active(db, *, tenant_id, note_id, is_active: bool) -> Optional[dict]:
    """Soft (de)activate a note. Unknown notes return ``None``."""
    note = _get_note(db, tenant_id, note_id)
    if note is None:
        return None
    if note.is_active != bool(is_active):
        note.is_active = bool(is_active)
        note.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(note)
    return serialize_note(note)


def set_note_priority(db, *, tenant_id, note_id, priority: int) -> Optional[dict]:
    _validate_score(priority, "priority")
    note = _get_note(db, tenant_id, note_id)
    if note is None:
        return None
    if note.priority != priority:
        note.priority = priority
        note.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(note)
    return serialize_note(note)
