"""
Shared helpers for memory services: similarity ranking, expiry, serialization.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

import numpy as np
from sqlalchemy.dialects import postgresql, sqlite

import contextvault.config as config
import contextvault.models as models
from contextvault.errors import ValidationIssue
from contextvault.validators import (
    validate_required_text as _validate_required_text,
    validate_optional_text as _validate_optional_text,
    validate_limit as _validate_limit,
    validate_threshold as _validate_threshold,
    validate_score as _validate_score,
    validate_string_list as _validate_string_list,
    validate_metadata as _validate_metadata,
    normalize_timestamp as _normalize_timestamp,
)

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

MAX_RESULT_LIMIT = config.MAX_RESULT_LIMIT
MAX_QUERY_LENGTH = config.MAX_QUERY_LENGTH
MAX_TEXT_LENGTH = config.MAX_TEXT_LENGTH
MAX_SHORT_TEXT_LENGTH = config.MAX_SHORT_TEXT_LENGTH
MAX_TYPE_LENGTH = config.MAX_TYPE_LENGTH
MAX_CATEGORY_LENGTH = config.MAX_CATEGORY_LENGTH
MAX_TAG_ITEMS = config.MAX_TAG_ITEMS

DEFAULT_SEARCH_THRESHOLD = config.DEFAULT_SEARCH_THRESHOLD
DEFAULT_SEARCH_LIMIT = config.DEFAULT_SEARCH_LIMIT
DEFAULT_RECENT_LIMIT = config.DEFAULT_RECENT_LIMIT
DEFAULT_IMPORTANCE = config.DEFAULT_IMPORTANCE
DEFAULT_PRIORITY = config.DEFAULT_PRIORITY


def _vector_search_enabled() -> bool:
    return models.PGVECTOR_ENABLED


def dialect_insert(db, model):
    """An INSERT that supports ON CONFLICT on the session's backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect: {dialect}")


def coerce_id(value, field: str):
    """Normalize an identifier to the primary-key representation of the backend."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        parsed = value
    else:
        try:
            parsed = uuid.UUID(str(value))
        except ValueError as exc:
            raise ValidationIssue(f"{field} must be a UUID", field=field, error_type="invalid_id") from exc
    return parsed if models.DB_BACKEND_EFFECTIVE == "postgres" else str(parsed)


# =============================================================================
# Similarity
# =============================================================================

def cosine_similarities(matrix, query) -> np.ndarray:
    """
    Cosine similarity of every row of ``matrix`` against ``query``.

    Rows (or a query) with zero norm score 0.0.
    """
    matrix = np.asarray(matrix, dtype="float64")
    query = np.asarray(query, dtype="float64")
    if matrix.ndim != 2 or matrix.shape[1] != query.shape[0]:
        raise ValueError("vectors must have the same length")
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros(matrix.shape[0], dtype="float64")
    np.divide(dots, norms, out=scores, where=norms > 0)
    return scores


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError("vectors must have the same length")
    return float(cosine_similarities([a], b)[0])


def not_expired(model, now: Optional[datetime] = None):
    now = now or datetime.utcnow()
    return (model.expires_at.is_(None)) | (model.expires_at > now)


def rank_by_similarity(
    db,
    model,
    scope_filters: Iterable,
    query_embedding: Sequence[float],
    *,
    limit: int,
    threshold: float,
    extra_filters: Iterable = (),
) -> List[tuple[object, float]]:
    """
    Rank rows of ``model`` against ``query_embedding``.

    Returns ``(row, similarity)`` pairs with ``similarity > threshold``,
    highest first, at most ``limit`` long. Scope filters are applied before
    ranking; expired rows never rank.
    """
    filters = list(scope_filters) + list(extra_filters) + [not_expired(model)]

    if _vector_search_enabled():
        distance = model.embedding.cosine_distance(list(query_embedding))
        similarity = (1 - distance).label("similarity")
        rows = (
            db.query(model, similarity)
            .filter(*filters)
            .filter((1 - distance) > threshold)
            .order_by(distance.asc())
            .limit(limit)
            .all()
        )
        return [(row, float(score)) for row, score in rows]

    candidates = []
    for row in db.query(model).filter(*filters).all():
        stored = row.embedding or []
        if len(stored) != len(query_embedding):
            logger.warning(
                "Skipping row with mismatched embedding width",
                extra={"table": model.__tablename__, "row_id": str(row.id)},
            )
            continue
        candidates.append(row)
    if not candidates:
        return []

    scores = cosine_similarities([row.embedding for row in candidates], query_embedding)
    # Stable sort keeps insertion order among equal scores.
    order = np.argsort(-scores, kind="stable")
    ranked = [(candidates[i], float(scores[i])) for i in order if scores[i] > threshold]
    return ranked[:limit]


# =============================================================================
# Serialization
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _str_id(value) -> Optional[str]:
    return str(value) if value is not None else None


def serialize_user(row) -> dict:
    return {
        "id": _str_id(row.id),
        "tenant_id": _str_id(row.tenant_id),
        "external_id": row.external_id,
        "display_name": row.display_name,
        "metadata": row.metadata_ or {},
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def serialize_memory(row, include_raw: bool = False) -> dict:
    payload = {
        "id": _str_id(row.id),
        "user_id": _str_id(row.user_id),
        "content": row.content,
        "memory_type": row.memory_type,
        "importance": row.importance,
        "metadata": row.metadata_ or {},
        "created_at": _iso(row.created_at),
        "expires_at": _iso(row.expires_at),
    }
    if include_raw:
        payload["raw_conversation"] = row.raw_conversation
    return payload


def serialize_profile(row) -> dict:
    return {
        "id": _str_id(row.id),
        "user_id": _str_id(row.user_id),
        "summary": row.summary,
        "version": row.version,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def serialize_note(row) -> dict:
    return {
        "id": _str_id(row.id),
        "tenant_id": _str_id(row.tenant_id),
        "category": row.category,
        "title": row.title,
        "content": row.content,
        "is_active": row.is_active,
        "priority": row.priority,
        "tags": list(row.tags or []),
        "metadata": row.metadata_ or {},
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
        "expires_at": _iso(row.expires_at),
    }


def serialize_tenant_memory(row) -> dict:
    return {
        "id": _str_id(row.id),
        "tenant_id": _str_id(row.tenant_id),
        "content": row.content,
        "memory_type": row.memory_type,
        "importance": row.importance,
        "source_user_id": _str_id(row.source_user_id),
        "source_memory_id": _str_id(row.source_memory_id),
        "metadata": row.metadata_ or {},
        "created_at": _iso(row.created_at),
        "expires_at": _iso(row.expires_at),
    }


def with_similarity(payload: dict, similarity: float) -> dict:
    payload["similarity"] = similarity
    return payload


def validate_search_inputs(query: str, limit: int, threshold: Optional[float] = None) -> None:
    _validate_required_text(query, "query", MAX_QUERY_LENGTH)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)
    if threshold is not None:
        _validate_threshold(threshold)


__all__ = [
    "logger",
    "coerce_id",
    "dialect_insert",
    "cosine_similarities",
    "cosine_similarity",
    "not_expired",
    "rank_by_similarity",
    "serialize_user",
    "serialize_memory",
    "serialize_profile",
    "serialize_note",
    "serialize_tenant_memory",
    "with_similarity",
    "validate_search_inputs",
    "_validate_required_text",
    "_validate_optional_text",
    "_validate_limit",
    "_validate_threshold",
    "_validate_score",
    "_validate_string_list",
    "_validate_metadata",
    "_normalize_timestamp",
]
