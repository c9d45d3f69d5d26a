"""
Tenant-scoped derived knowledge, including promotion of user memories.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import desc

from contextvault.models import TenantMemoryItem
from contextvault.services.memory_shared import (
    _normalize_timestamp,
    _validate_metadata,
    _validate_optional_text,
    _validate_required_text,
    _validate_score,
    _validate_string_list,
    DEFAULT_IMPORTANCE,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    MAX_TAG_ITEMS,
    MAX_TEXT_LENGTH,
    MAX_TYPE_LENGTH,
    logger,
    not_expired,
    rank_by_similarity,
    serialize_tenant_memory,
    validate_search_inputs,
    with_similarity,
)


def add_tenant_memory(
    db,
    embedder,
    *,
    tenant_id,
    content: str,
    memory_type: str,
    importance: Optional[int] = None,
    source_user_id=None,
    source_memory_id=None,
    metadata: Optional[dict] = None,
    expires_at: Optional[datetime] = None,
) -> dict:
    _validate_required_text(content, "content", MAX_TEXT_LENGTH)
    _validate_required_text(memory_type, "memory_type", MAX_TYPE_LENGTH)
    _validate_score(importance, "importance")
    _validate_metadata(metadata, "metadata")
    expires_at = _normalize_timestamp(expires_at, "expires_at")

    embedding = embedder.embed(content)

    record = TenantMemoryItem(
        tenant_id=tenant_id,
        content=content,
        embedding=embedding,
        memory_type=memory_type,
        importance=importance if importance is not None else DEFAULT_IMPORTANCE,
        source_user_id=source_user_id,
        source_memory_id=source_memory_id,
        metadata_=metadata or {},
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "memory_added",
        extra={
            "scope": "tenant",
            "memory_id": str(record.id),
            "memory_type": memory_type,
            "promoted": source_memory_id is not None,
        },
    )
    return serialize_tenant_memory(record)


def promote_from_user(
    db,
    embedder,
    *,
    tenant_id,
    source_memory_id,
    content: str,
    memory_type: str,
    importance: Optional[int] = None,
    source_user_id=None,
) -> dict:
    """
    Derive a tenant memory from a user memory.

    ``content`` is embedded again rather than copying the source vector,
    since it may have been edited during promotion.
    """
    return add_tenant_memory(
        db,
        embedder,
        tenant_id=tenant_id,
        content=content,
        memory_type=memory_type,
        importance=importance,
        source_user_id=source_user_id,
        source_memory_id=source_memory_id,
    )


def search_tenant_memories(
    db,
    embedder,
    *,
    tenant_id,
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
    memory_type: Optional[str] = None,
    threshold: float = DEFAULT_SEARCH_THRESHOLD,
) -> list[dict]:
    validate_search_inputs(query, limit, threshold)
    _validate_optional_text(memory_type, "memory_type", MAX_TYPE_LENGTH)
    extra_filters = []
    if memory_type:
        extra_filters.append(TenantMemoryItem.memory_type == memory_type)
    query_embedding = embedder.embed(query)
    ranked = rank_by_similarity(
        db,
        TenantMemoryItem,
        [TenantMemoryItem.tenant_id == tenant_id],
        query_embedding,
        limit=limit,
        threshold=threshold,
        extra_filters=extra_filters,
    )
    return [with_similarity(serialize_tenant_memory(row), score) for row, score in ranked]


def get_all_tenant_memories(
    db,
    *,
    tenant_id,
    memory_types: Optional[Sequence[str]] = None,
) -> list[dict]:
    _validate_string_list(memory_types, "memory_types", MAX_TAG_ITEMS, MAX_TYPE_LENGTH)
    query = (
        db.query(TenantMemoryItem)
        .filter(TenantMemoryItem.tenant_id == tenant_id)
        .filter(not_expired(TenantMemoryItem))
    )
    if memory_types:
        query = query.filter(TenantMemoryItem.memory_type.in_(list(memory_types)))
    rows = query.order_by(desc(TenantMemoryItem.created_at)).all()
    return [serialize_tenant_memory(row) for row in rows]
