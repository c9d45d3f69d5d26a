from datetime import datetime, timedelta, timezone

import pytest

from contextvault.errors import ProviderTransportError, UnconfiguredCapability, ValidationIssue
from contextvault.models import MemoryItem, Tenant
from contextvault.services.memory_service import MemoryService

from conftest import FailingEmbeddingProvider


def _age(db_session, memory_id, minutes):
    row = db_session.query(MemoryItem).filter(MemoryItem.id == memory_id).one()
    row.created_at = datetime.utcnow() - timedelta(minutes=minutes)
    db_session.commit()


def test_add_then_search_round_trip(service):
    stored = service.add_memory("acme", "u1", "The user prefers dark roast coffee", "preference", importance=7)
    assert stored["importance"] == 7
    assert stored["memory_type"] == "preference"

    results = service.search("acme", "u1", "The user prefers dark roast coffee")
    assert results
    assert results[0]["content"] == "The user prefers dark roast coffee"
    assert results[0]["similarity"] == pytest.approx(1.0)
    assert "embedding" not in results[0]


def test_default_importance_is_five(service):
    stored = service.add_memory("acme", "u1", "Lives in Lisbon", "fact")
    assert stored["importance"] == 5


def test_search_never_crosses_user_or_tenant(service):
    text = "Allergic to peanuts"
    service.add_memory("acme", "u1", text, "fact")
    service.add_memory("acme", "u2", text, "fact")
    service.add_memory("globex", "u1", text, "fact")

    for slug, user in (("acme", "u1"), ("acme", "u2"), ("globex", "u1")):
        results = service.search(slug, user, text)
        assert len(results) == 1
        assert results[0]["user_id"] == service.list_user_memories(slug, user)[0]["user_id"]


def test_threshold_is_monotonic(service):
    for text in (
        "coffee in the morning",
        "coffee beans from ethiopia",
        "tea in the afternoon",
        "running shoes size ten",
    ):
        service.add_memory("acme", "u1", text, "preference")

    previous = None
    for threshold in (-0.5, 0.0, 0.2, 0.5, 0.9):
        results = service.search("acme", "u1", "coffee in the morning", threshold=threshold)
        assert all(item["similarity"] > threshold for item in results)
        ids = [item["id"] for item in results]
        if previous is not None:
            expected = [item["id"] for item in previous if item["similarity"] > threshold]
            assert ids == expected
        previous = results


def test_limit_contract(service):
    for index in range(6):
        service.add_memory("acme", "u1", f"project deadline number {index}", "event")

    results = service.search("acme", "u1", "project deadline", limit=4, threshold=0.0)
    assert len(results) == 4
    similarities = [item["similarity"] for item in results]
    assert similarities == sorted(similarities, reverse=True)
    assert similarities[0] >= similarities[-1]


def test_recent_memories_newest_first(service, db_session):
    older = service.add_memory("acme", "u1", "older memory", "general")
    newer = service.add_memory("acme", "u1", "newer memory", "general")
    _age(db_session, older["id"], 30)

    recent = service.get_recent_memories("acme", "u1", limit=10)
    assert [item["id"] for item in recent] == [newer["id"], older["id"]]

    assert len(service.get_recent_memories("acme", "u1", limit=1)) == 1


def test_expired_memories_are_hidden_from_reads(service):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    future = datetime.now(timezone.utc) + timedelta(days=1)
    service.add_memory("acme", "u1", "temporary discount code", "general", expires_at=past)
    service.add_memory("acme", "u1", "temporary discount voucher", "general", expires_at=future)

    search = service.search("acme", "u1", "temporary discount", threshold=0.0)
    assert [item["content"] for item in search] == ["temporary discount voucher"]
    recent = service.get_recent_memories("acme", "u1")
    assert [item["content"] for item in recent] == ["temporary discount voucher"]
    assert len(service.list_user_memories("acme", "u1")) == 2


def test_reads_on_unknown_identity_return_empty(service, db_session):
    assert service.search("nowhere", "nobody", "anything") == []
    assert service.get_recent_memories("nowhere", "nobody") == []
    assert service.get_profile_summary("nowhere", "nobody") is None
    assert db_session.query(Tenant).count() == 0


def test_embedding_failure_leaves_no_row(session_factory, db_session):
    failing = MemoryService(embedding_provider=FailingEmbeddingProvider(), session_factory=session_factory)
    with pytest.raises(ProviderTransportError):
        failing.add_memory("acme", "u1", "never stored", "general")
    assert db_session.query(MemoryItem).count() == 0


def test_missing_embedding_provider_is_unconfigured(session_factory):
    bare = MemoryService(session_factory=session_factory)
    with pytest.raises(UnconfiguredCapability):
        bare.add_memory("acme", "u1", "content", "general")


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"content": ""}, "content"),
        ({"importance": 11}, "importance"),
        ({"importance": 0}, "importance"),
        ({"memory_type": "x" * 51}, "memory_type"),
        ({"metadata": ["not", "a", "dict"]}, "metadata"),
    ],
)
def test_add_memory_validation(service, kwargs, field):
    params = {"content": "valid content", "memory_type": "general"}
    params.update(kwargs)
    with pytest.raises(ValidationIssue) as excinfo:
        service.add_memory("acme", "u1", **params)
    assert excinfo.value.field == field


def test_search_validation(service):
    service.add_memory("acme", "u1", "something", "general")
    with pytest.raises(ValidationIssue):
        service.search("acme", "u1", "something", limit=0)
    with pytest.raises(ValidationIssue):
        service.search("acme", "u1", "something", threshold=1.5)


def test_raw_conversation_is_kept_for_admin_listing(service):
    conversation = [{"role": "user", "content": "I moved to Porto"}]
    service.add_memory("acme", "u1", "Lives in Porto", "fact", raw_conversation=conversation)
    listed = service.list_user_memories("acme", "u1")
    assert listed[0]["raw_conversation"] == conversation
