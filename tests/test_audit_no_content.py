import pytest

from contextvault.audit import list_audit_events, record_purge
from contextvault.audit_constants import (
    EVENT_TENANT_NOTES_PURGED,
    EVENT_USER_MEMORIES_PURGED,
    EVENT_USER_PURGED,
)
from contextvault.errors import ValidationIssue
from contextvault.models import AuditEvent
from contextvault.services import identity


@pytest.fixture
def tenant(db_session):
    return identity.get_or_create_tenant(db_session, "acme")


def test_audit_rejects_content_metadata(db_session, tenant):
    with pytest.raises(ValueError):
        record_purge(
            db_session,
            event_type=EVENT_USER_MEMORIES_PURGED,
            tenant=tenant,
            target_ids=["a"],
            count_affected=1,
            metadata={"content": "should_not_log"},
        )
    db_session.rollback()
    assert db_session.query(AuditEvent).count() == 0


def test_audit_rejects_nested_content_like_keys(db_session, tenant):
    with pytest.raises(ValueError):
        record_purge(
            db_session,
            event_type=EVENT_USER_MEMORIES_PURGED,
            tenant=tenant,
            target_ids=["a"],
            count_affected=1,
            metadata={"details": [{"profile-summary": "secret"}]},
        )
    db_session.rollback()
    assert db_session.query(AuditEvent).count() == 0


def test_audit_rejects_long_strings(db_session, tenant):
    with pytest.raises(ValueError):
        record_purge(
            db_session,
            event_type=EVENT_USER_MEMORIES_PURGED,
            tenant=tenant,
            target_ids=["a"],
            count_affected=1,
            metadata={"note": "x" * 600},
        )


def test_audit_rejects_unknown_event_type(db_session, tenant):
    with pytest.raises(ValueError):
        record_purge(
            db_session,
            event_type="observation.purged",
            tenant=tenant,
            target_ids=[],
            count_affected=0,
        )


def test_record_purge_derives_target_and_identity_fields(db_session, tenant):
    user = identity.get_or_create_user(db_session, tenant.id, "u1")
    record_purge(
        db_session,
        event_type=EVENT_USER_PURGED,
        tenant=tenant,
        user=user,
        target_ids=[user.id],
        count_affected=1,
        actor_id="admin-7",
        reason="gdpr",
    )
    db_session.commit()

    event = list_audit_events(db_session, tenant_slug="acme")["events"][0]
    assert event["actor_type"] == "tenant_admin"
    assert event["target_type"] == "user"
    assert event["user_external_id"] == "u1"
    assert event["target_ids"] == [str(user.id)]
    assert event["actor_id"] == "admin-7"


def test_list_audit_events_filters_by_tenant(db_session):
    for slug in ("acme", "globex"):
        record_purge(
            db_session,
            event_type=EVENT_TENANT_NOTES_PURGED,
            tenant=identity.get_or_create_tenant(db_session, slug),
            target_ids=["n1"],
            count_affected=1,
        )
    db_session.commit()

    result = list_audit_events(db_session, tenant_slug="acme")
    assert result["count"] == 1
    assert result["events"][0]["tenant_slug"] == "acme"
    assert result["events"][0]["target_ids"] == ["n1"]


def test_list_audit_events_pages_with_cursor(db_session, tenant):
    for index in range(3):
        record_purge(
            db_session,
            event_type=EVENT_TENANT_NOTES_PURGED,
            tenant=tenant,
            target_ids=[f"n{index}"],
            count_affected=1,
        )
        db_session.commit()

    first = list_audit_events(db_session, limit=2)
    assert first["count"] == 2
    assert first["next_cursor"] == first["events"][-1]["event_id"]

    second = list_audit_events(db_session, limit=2, cursor=first["next_cursor"])
    assert second["count"] == 1
    assert second["next_cursor"] is None

    seen = [event["event_id"] for event in first["events"] + second["events"]]
    assert len(set(seen)) == 3


def test_list_audit_events_rejects_bad_paging(db_session):
    with pytest.raises(ValidationIssue):
        list_audit_events(db_session, limit=0)
    with pytest.raises(ValidationIssue) as excinfo:
        list_audit_events(db_session, cursor="00000000-0000-0000-0000-000000000000")
    assert excinfo.value.field == "cursor"
