import uuid
from datetime import datetime, timedelta

import pytest

from contextvault.errors import ValidationIssue
from contextvault.models import TenantMemoryItem
from contextvault.services.memory_service import MemoryService

from conftest import FakeEmbeddingProvider


def test_note_search_filters_active_and_category(service):
    refund = service.add_tenant_note("acme", "policy", "Refunds", "refunds within thirty days")
    service.add_tenant_note("acme", "faq", "Refund FAQ", "refunds within thirty days of purchase")
    service.add_tenant_note("globex", "policy", "Refunds", "refunds within thirty days")

    all_matches = service.search_tenant_notes("acme", "refunds within thirty days")
    assert len(all_matches) == 2

    policy_only = service.search_tenant_notes("acme", "refunds within thirty days", category="policy")
    assert [note["id"] for note in policy_only] == [refund["id"]]

    service.set_tenant_note_active("acme", refund["id"], False)
    remaining = service.search_tenant_notes("acme", "refunds within thirty days")
    assert [note["category"] for note in remaining] == ["faq"]


def test_notes_by_category_ordered_by_priority(service):
    low = service.add_tenant_note("acme", "policy", "Low", "low priority note", priority=2)
    high = service.add_tenant_note("acme", "policy", "High", "high priority note", priority=9)
    mid = service.add_tenant_note("acme", "policy", "Mid", "default priority note")
    service.add_tenant_note("acme", "faq", "Other", "other category")

    notes = service.get_tenant_notes_by_category("acme", "policy")
    assert [note["id"] for note in notes] == [high["id"], mid["id"], low["id"]]
    assert mid["priority"] == 5


def test_set_note_priority_and_unknown_note(service):
    note = service.add_tenant_note("acme", "policy", "Title", "body text")
    updated = service.set_tenant_note_priority("acme", note["id"], 8)
    assert updated["priority"] == 8

    assert service.set_tenant_note_priority("acme", str(uuid.uuid4()), 3) is None
    assert service.set_tenant_note_active("unknown-tenant", note["id"], False) is None
    with pytest.raises(ValidationIssue):
        service.set_tenant_note_priority("acme", note["id"], 42)
    with pytest.raises(ValidationIssue):
        service.set_tenant_note_active("acme", "not-a-uuid", False)


def test_expired_notes_are_hidden(service):
    service.add_tenant_note(
        "acme",
        "policy",
        "Old",
        "holiday opening hours",
        expires_at=datetime.utcnow() - timedelta(hours=1),
    )
    assert service.search_tenant_notes("acme", "holiday opening hours") == []
    assert service.get_tenant_notes_by_category("acme", "policy") == []
    assert len(service.list_tenant_notes("acme")) == 1


def test_note_tags_and_metadata_round_trip(service):
    note = service.add_tenant_note(
        "acme",
        "policy",
        "Tagged",
        "tagged note",
        tags=["billing", "refunds"],
        metadata={"owner": "support"},
    )
    assert note["tags"] == ["billing", "refunds"]
    assert note["metadata"] == {"owner": "support"}
    assert note["is_active"] is True


def test_tenant_memory_search_with_type_filter(service):
    service.add_tenant_memory("acme", "customers ask about shipping times", "faq")
    service.add_tenant_memory("acme", "shipping times are three days", "fact")
    service.add_tenant_memory("globex", "shipping times are three days", "fact")

    everything = service.search_tenant_memories("acme", "shipping times")
    assert len(everything) == 2
    facts = service.search_tenant_memories("acme", "shipping times", memory_type="fact")
    assert [item["memory_type"] for item in facts] == ["fact"]
    assert service.search_tenant_memories("nowhere", "shipping times") == []


def test_promotion_records_provenance_and_reembeds(service, embedder, db_session):
    source = service.add_memory("acme", "u1", "Customer prefers email contact", "preference")
    calls_before = embedder.calls

    promoted = service.promote_memory_to_tenant(
        "acme",
        source["id"],
        "Customers often prefer email contact",
        "insight",
        importance=6,
    )

    assert embedder.calls == calls_before + 1
    assert promoted["source_memory_id"] == source["id"]
    assert promoted["source_user_id"] == source["user_id"]
    assert promoted["content"] == "Customers often prefer email contact"
    assert promoted["importance"] == 6

    results = service.search_tenant_memories("acme", "Customers often prefer email contact")
    assert results[0]["id"] == promoted["id"]


def test_promotion_from_other_tenant_keeps_label_only(service):
    source = service.add_memory("globex", "u1", "Something private", "fact")
    promoted = service.promote_memory_to_tenant("acme", source["id"], "Something shared", "fact")
    assert promoted["source_memory_id"] == source["id"]
    assert promoted["source_user_id"] is None


def test_promotion_source_is_not_owned(service, db_session):
    source = service.add_memory("acme", "u1", "Deletable source", "fact")
    service.promote_memory_to_tenant("acme", source["id"], "Kept after purge", "fact")
    assert service.purge_user_memories("acme", "u1")["deleted_count"] == 1
    assert db_session.query(TenantMemoryItem).count() == 1


def test_tenant_scope_uses_tenant_provider(session_factory):
    user_embedder = FakeEmbeddingProvider(dimensions=64)
    tenant_embedder = FakeEmbeddingProvider(dimensions=32)
    service = MemoryService(
        embedding_provider=user_embedder,
        tenant_embedding_provider=tenant_embedder,
        session_factory=session_factory,
    )
    service.add_tenant_note("acme", "policy", "Title", "note body")
    service.add_tenant_memory("acme", "tenant fact", "fact")
    service.add_memory("acme", "u1", "user fact", "fact")

    assert tenant_embedder.calls == 2
    assert user_embedder.calls == 1
