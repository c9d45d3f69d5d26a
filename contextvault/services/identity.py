"""
Tenant and user identity resolution.

Identities are created lazily on first write. Creation is race-safe without
locks: insert with "do nothing on conflict", then re-read whichever row won.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from contextvault.models import Tenant, User
from contextvault.services.memory_shared import (
    _validate_metadata,
    _validate_optional_text,
    _validate_required_text,
    MAX_SHORT_TEXT_LENGTH,
    dialect_insert,
    logger,
)

MAX_SLUG_LENGTH = 100


def _insert_ignore_conflict(db, model, values: dict, conflict_columns: list[str]) -> bool:
    stmt = dialect_insert(db, model).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)
    result = db.execute(stmt)
    db.commit()
    return bool(result.rowcount)


def validate_slug(slug: str) -> None:
    _validate_required_text(slug, "tenant_slug", MAX_SLUG_LENGTH)


def validate_external_id(external_id: str) -> None:
    _validate_required_text(external_id, "user_external_id", MAX_SHORT_TEXT_LENGTH)


def get_tenant_by_slug(db, slug: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.slug == slug).first()


def get_or_create_tenant(db, slug: str, name: Optional[str] = None) -> Tenant:
    """Get or create a tenant by slug."""
    validate_slug(slug)
    tenant = get_tenant_by_slug(db, slug)
    if tenant is not None:
        return tenant
    created = _insert_ignore_conflict(
        db,
        Tenant,
        {"slug": slug, "name": name or slug},
        ["slug"],
    )
    tenant = get_tenant_by_slug(db, slug)
    if tenant is None:
        raise RuntimeError("Tenant create failed")
    if created:
        logger.info("identity_created", extra={"kind": "tenant", "tenant_slug": slug})
    return tenant


def get_user(db, tenant_id, external_id: str) -> Optional[User]:
    return (
        db.query(User)
        .filter(User.tenant_id == tenant_id)
        .filter(User.external_id == external_id)
        .first()
    )


def get_or_create_user(db, tenant_id, external_id: str) -> User:
    """Get or create a user by (tenant, external id)."""
    validate_external_id(external_id)
    user = get_user(db, tenant_id, external_id)
    if user is not None:
        return user
    created = _insert_ignore_conflict(
        db,
        User,
        {"tenant_id": tenant_id, "external_id": external_id},
        ["tenant_id", "external_id"],
    )
    user = get_user(db, tenant_id, external_id)
    if user is None:
        raise RuntimeError("User create failed")
    if created:
        logger.info("identity_created", extra={"kind": "user", "tenant_id": str(tenant_id)})
    return user


def resolve_or_create(db, tenant_slug: str, user_external_id: str) -> tuple[Tenant, User]:
    tenant = get_or_create_tenant(db, tenant_slug)
    user = get_or_create_user(db, tenant.id, user_external_id)
    return tenant, user


def find_existing(db, tenant_slug: str, user_external_id: str) -> Optional[tuple[Tenant, User]]:
    """Resolve without creating; unknown identities resolve to ``None``."""
    validate_slug(tenant_slug)
    validate_external_id(user_external_id)
    tenant = get_tenant_by_slug(db, tenant_slug)
    if tenant is None:
        return None
    user = get_user(db, tenant.id, user_external_id)
    if user is None:
        return None
    return tenant, user


def update_user(
    db,
    user: User,
    display_name: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> User:
    """Update the mutable user fields; ``None`` leaves a field unchanged."""
    _validate_optional_text(display_name, "display_name", MAX_SHORT_TEXT_LENGTH)
    _validate_metadata(metadata, "metadata")
    changed = False
    if display_name is not None and display_name != user.display_name:
        user.display_name = display_name
        changed = True
    if metadata is not None and metadata != (user.metadata_ or {}):
        user.metadata_ = metadata
        changed = True
    if changed:
        user.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(user)
    return user
