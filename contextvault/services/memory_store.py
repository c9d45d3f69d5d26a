"""
User-scoped memory store.

Every row is embedded before insert; similarity search is always scoped to a
single user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import desc

from contextvault.models import MemoryItem
from contextvault.services.memory_shared import (
    _normalize_timestamp,
    _validate_limit,
    _validate_metadata,
    _validate_required_text,
    _validate_score,
    DEFAULT_IMPORTANCE,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    MAX_RESULT_LIMIT,
    MAX_TEXT_LENGTH,
    MAX_TYPE_LENGTH,
    logger,
    not_expired,
    rank_by_similarity,
    serialize_memory,
    validate_search_inputs,
    with_similarity,
)


def add_memory(
    db,
    embedder,
    *,
    user_id,
    content: str,
    memory_type: str,
    importance: Optional[int] = None,
    metadata: Optional[dict] = None,
    raw_conversation: Optional[Sequence[dict]] = None,
    expires_at: Optional[datetime] = None,
) -> dict:
    """
    Embed ``content`` and store it as a memory of ``user_id``.

    The embedding call happens before the row is added to the session, so a
    provider failure leaves nothing behind.
    """
    _validate_required_text(content, "content", MAX_TEXT_LENGTH)
    _validate_required_text(memory_type, "memory_type", MAX_TYPE_LENGTH)
    _validate_score(importance, "importance")
    _validate_metadata(metadata, "metadata")
    expires_at = _normalize_timestamp(expires_at, "expires_at")

    embedding = embedder.embed(content)

    record = MemoryItem(
        user_id=user_id,
        content=content,
        embedding=embedding,
        memory_type=memory_type,
        importance=importance if importance is not None else DEFAULT_IMPORTANCE,
        metadata_=metadata or {},
        raw_conversation=list(raw_conversation) if raw_conversation is not None else None,
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "memory_added",
        extra={"scope": "user", "memory_id": str(record.id), "memory_type": memory_type},
    )
    return serialize_memory(record)


def search_memories(
    db,
    embedder,
    *,
    user_id,
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
    threshold: float = DEFAULT_SEARCH_THRESHOLD,
) -> list[dict]:
    """Rank the user's memories by cosine similarity to ``query``."""
    validate_search_inputs(query, limit, threshold)
    query_embedding = embedder.embed(query)
    ranked = rank_by_similarity(
        db,
        MemoryItem,
        [MemoryItem.user_id == user_id],
        query_embedding,
        limit=limit,
        threshold=threshold,
    )
    return [with_similarity(serialize_memory(row), score) for row, score in ranked]


def get_recent_memories(db, *, user_id, limit: int = DEFAULT_SEARCH_LIMIT) -> list[dict]:
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)
    rows = (
        db.query(MemoryItem)
        .filter(MemoryItem.user_id == user_id)
        .filter(not_expired(MemoryItem))
        .order_by(desc(MemoryItem.created_at))
        .limit(limit)
        .all()
    )
    return [serialize_memory(row) for row in rows]
