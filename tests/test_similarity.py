import uuid

import pytest

from contextvault.errors import ValidationIssue
from contextvault.models import MemoryItem
from contextvault.services import identity
from contextvault.services.memory_shared import (
    coerce_id,
    cosine_similarities,
    cosine_similarity,
    rank_by_similarity,
)


def test_cosine_similarity_basics():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cosine_similarity_rejects_mismatched_widths():
    with pytest.raises(ValueError):
        cosine_similarity([1.0], [1.0, 0.0])


def test_cosine_similarities_scores_every_row():
    scores = cosine_similarities([[1.0, 0.0], [0.0, 0.0], [3.0, 4.0]], [1.0, 0.0])
    assert list(scores) == [pytest.approx(1.0), 0.0, pytest.approx(0.6)]

    with pytest.raises(ValueError):
        cosine_similarities([[1.0, 0.0, 0.0]], [1.0, 0.0])


def _insert(db_session, user_id, embedding):
    row = MemoryItem(user_id=user_id, content="x", embedding=embedding, memory_type="general")
    db_session.add(row)
    db_session.commit()
    return row


def test_rank_by_similarity_orders_filters_and_limits(db_session):
    tenant = identity.get_or_create_tenant(db_session, "acme")
    user = identity.get_or_create_user(db_session, tenant.id, "u1")
    other = identity.get_or_create_user(db_session, tenant.id, "u2")

    exact = _insert(db_session, user.id, [1.0, 0.0])
    close = _insert(db_session, user.id, [0.8, 0.6])
    _insert(db_session, user.id, [0.0, 1.0])
    _insert(db_session, other.id, [1.0, 0.0])

    ranked = rank_by_similarity(
        db_session,
        MemoryItem,
        [MemoryItem.user_id == user.id],
        [1.0, 0.0],
        limit=10,
        threshold=0.3,
    )
    assert [row.id for row, _ in ranked] == [exact.id, close.id]
    assert [score for _, score in ranked] == [pytest.approx(1.0), pytest.approx(0.8)]

    limited = rank_by_similarity(
        db_session,
        MemoryItem,
        [MemoryItem.user_id == user.id],
        [1.0, 0.0],
        limit=1,
        threshold=-1.0,
    )
    assert [row.id for row, _ in limited] == [exact.id]


def test_rank_threshold_is_strict(db_session):
    tenant = identity.get_or_create_tenant(db_session, "acme")
    user = identity.get_or_create_user(db_session, tenant.id, "u1")
    _insert(db_session, user.id, [0.0, 1.0])

    ranked = rank_by_similarity(
        db_session,
        MemoryItem,
        [MemoryItem.user_id == user.id],
        [1.0, 0.0],
        limit=10,
        threshold=0.0,
    )
    assert ranked == []


def test_coerce_id():
    value = uuid.uuid4()
    assert coerce_id(value, "id") == str(value)
    assert coerce_id(str(value).upper(), "id") == str(value)
    assert coerce_id(None, "id") is None
    with pytest.raises(ValidationIssue) as excinfo:
        coerce_id("nope", "note_id")
    assert excinfo.value.error_type == "invalid_id"


def test_rank_keeps_insertion_order_for_equal_scores(db_session):
    tenant = identity.get_or_create_tenant(db_session, "acme")
    user = identity.get_or_create_user(db_session, tenant.id, "u1")
    first = _insert(db_session, user.id, [0.6, 0.8])
    second = _insert(db_session, user.id, [0.6, 0.8])
    zero = _insert(db_session, user.id, [0.0, 0.0])
    _insert(db_session, user.id, [1.0, 0.0, 0.0])

    ranked = rank_by_similarity(
        db_session,
        MemoryItem,
        [MemoryItem.user_id == user.id],
        [0.6, 0.8],
        limit=10,
        threshold=-1.0,
    )
    assert [row.id for row, _ in ranked] == [first.id, second.id, zero.id]
    assert ranked[2][1] == 0.0
