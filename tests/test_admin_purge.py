from contextvault.audit_constants import (
    EVENT_TENANT_MEMORIES_PURGED,
    EVENT_TENANT_NOTES_PURGED,
    EVENT_TENANT_PURGED,
    EVENT_USER_MEMORIES_PURGED,
    EVENT_USER_PURGED,
)
from contextvault.models import (
    AuditEvent,
    MemoryItem,
    ProfileSummary,
    Tenant,
    TenantMemoryItem,
    TenantNote,
    User,
)


def _seed(service):
    service.add_memory("acme", "u1", "first memory", "general")
    service.add_memory("acme", "u1", "second memory", "general")
    service.add_memory("acme", "u2", "other user memory", "general")
    service.update_profile_summary("acme", "u1", "Profile text")
    note = service.add_tenant_note("acme", "policy", "Title", "note body")
    service.add_tenant_memory("acme", "tenant memory", "fact")
    service.add_memory("globex", "u1", "globex memory", "general")
    return note


def test_admin_listings_include_inactive_and_never_vectors(service):
    note = _seed(service)
    service.set_tenant_note_active("acme", note["id"], False)

    notes = service.list_tenant_notes("acme")
    assert len(notes) == 1
    assert notes[0]["is_active"] is False
    assert all("embedding" not in item for item in notes)
    assert all("embedding" not in item for item in service.list_user_memories("acme", "u1"))
    assert len(service.list_tenant_memories("acme")) == 1


def test_purge_user_memories_counts_and_audits(service, db_session):
    _seed(service)
    result = service.purge_user_memories("acme", "u1", actor_id="admin-7", reason="gdpr request")
    assert result == {"deleted_count": 2}

    remaining = db_session.query(MemoryItem).count()
    assert remaining == 2

    events = db_session.query(AuditEvent).filter(AuditEvent.event_type == EVENT_USER_MEMORIES_PURGED).all()
    assert len(events) == 1
    event = events[0]
    assert event.count_affected == 2
    assert event.tenant_slug == "acme"
    assert event.user_external_id == "u1"
    assert event.actor_type == "tenant_admin"
    assert event.actor_id == "admin-7"
    assert len(event.target_ids) == 2
    assert "content" not in (event.metadata_ or {})


def test_purge_with_nothing_to_delete_writes_no_event(service, db_session):
    service.update_user("acme", "u1")
    assert service.purge_user_memories("acme", "u1") == {"deleted_count": 0}
    assert service.purge_tenant_notes("acme") == {"deleted_count": 0}
    assert service.purge_user_memories("nowhere", "nobody") == {"deleted_count": 0}
    assert service.purge_tenant("nowhere") == {"deleted_count": 0}
    assert db_session.query(AuditEvent).count() == 0


def test_purge_tenant_notes_and_memories(service, db_session):
    _seed(service)
    assert service.purge_tenant_notes("acme") == {"deleted_count": 1}
    assert service.purge_tenant_memories("acme") == {"deleted_count": 1}
    assert db_session.query(TenantNote).count() == 0
    assert db_session.query(TenantMemoryItem).count() == 0

    event_types = {row.event_type for row in db_session.query(AuditEvent).all()}
    assert event_types == {EVENT_TENANT_NOTES_PURGED, EVENT_TENANT_MEMORIES_PURGED}


def test_purge_user_cascades_to_memories_and_profile(service, db_session):
    _seed(service)
    assert service.purge_user("acme", "u1") == {"deleted_count": 1}

    assert db_session.query(User).count() == 2
    assert db_session.query(ProfileSummary).count() == 0
    assert db_session.query(MemoryItem).count() == 2
    assert service.list_user_memories("acme", "u1") == []
    assert db_session.query(AuditEvent).filter(AuditEvent.event_type == EVENT_USER_PURGED).count() == 1


def test_purge_tenant_cascades_everything_it_owns(service, db_session):
    _seed(service)
    assert service.purge_tenant("acme") == {"deleted_count": 1}

    assert [tenant.slug for tenant in db_session.query(Tenant).all()] == ["globex"]
    assert db_session.query(User).count() == 1
    assert db_session.query(MemoryItem).count() == 1
    assert db_session.query(TenantNote).count() == 0
    assert db_session.query(TenantMemoryItem).count() == 0
    assert db_session.query(ProfileSummary).count() == 0

    audit = service.list_audit_events(tenant_slug="acme", event_type=EVENT_TENANT_PURGED)
    assert audit["count"] == 1
    assert audit["events"][0]["target_type"] == "tenant"
