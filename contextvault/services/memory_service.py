"""
MemoryService: the library boundary over identity, stores, context, and admin.

Every public method opens its own session, does its work, and closes it.
Writes create the tenant and user on first use; reads on an unknown identity
return empty results without creating anything.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Sequence

from contextvault.audit import list_audit_events
from contextvault.db import DB
from contextvault.errors import UnconfiguredCapability
from contextvault.models import MemoryItem, User
from contextvault.services import admin, identity
from contextvault.services.context_composer import compose_context, validate_context_options
from contextvault.services.conversation import process_conversation, require_extractor
from contextvault.services.memory_shared import DEFAULT_RECENT_LIMIT, coerce_id, serialize_user
from contextvault.services.memory_store import add_memory, get_recent_memories, search_memories
from contextvault.services.profile_store import delete_profile, get_profile, upsert_profile
from contextvault.services.tenant_memories import promote_from_user, search_tenant_memories
from contextvault.services.tenant_memories import add_tenant_memory as _add_tenant_memory
from contextvault.services.tenant_notes import (
    add_note,
    get_notes_by_category,
    search_notes,
    set_note_active,
    set_note_priority,
)
from contextvault.validators import validate_conversation


class MemoryService:
    def __init__(
        self,
        embedding_provider=None,
        tenant_embedding_provider=None,
        extraction_provider=None,
        session_factory: Optional[Callable] = None,
    ):
        self.embedding_provider = embedding_provider
        self.tenant_embedding_provider = tenant_embedding_provider
        self.extraction_provider = extraction_provider
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @property
    def session_factory(self) -> Callable:
        factory = self._session_factory or DB.SessionLocal
        if factory is None:
            raise RuntimeError("Database not initialized")
        return factory

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _user_embedder(self):
        if self.embedding_provider is None:
            raise UnconfiguredCapability("embedding provider")
        return self.embedding_provider

    def _tenant_embedder(self):
        embedder = self.tenant_embedding_provider or self.embedding_provider
        if embedder is None:
            raise UnconfiguredCapability("tenant embedding provider")
        return embedder

    def close(self) -> None:
        seen = set()
        for provider in (self.embedding_provider, self.tenant_embedding_provider, self.extraction_provider):
            if provider is not None and id(provider) not in seen:
                seen.add(id(provider))
                provider.close()

    # ------------------------------------------------------------------
    # user scope
    # ------------------------------------------------------------------

    def add_memory(
        self,
        tenant_slug: str,
        user_external_id: str,
        content: str,
        memory_type: str,
        importance: Optional[int] = None,
        metadata: Optional[dict] = None,
        raw_conversation: Optional[Sequence[dict]] = None,
        expires_at: Optional[datetime] = None,
    ) -> dict:
        embedder = self._user_embedder()
        if raw_conversation is not None:
            raw_conversation = validate_conversation(raw_conversation, "raw_conversation")
        with self._session() as db:
            _, user = identity.resolve_or_create(db, tenant_slug, user_external_id)
            return add_memory(
                db,
                embedder,
                user_id=user.id,
                content=content,
                memory_type=memory_type,
                importance=importance,
                metadata=metadata,
                raw_conversation=raw_conversation,
                expires_at=expires_at,
            )

    def search(
        self,
        tenant_slug: str,
        user_external_id: str,
        query: str,
        limit: int = 10,
        threshold: Optional[float] = None,
    ) -> list[dict]:
        embedder = self._user_embedder()
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return []
            _, user = found
            kwargs = {} if threshold is None else {"threshold": threshold}
            return search_memories(db, embedder, user_id=user.id, query=query, limit=limit, **kwargs)

    def get_recent_memories(self, tenant_slug: str, user_external_id: str, limit: int = 10) -> list[dict]:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return []
            return get_recent_memories(db, user_id=found[1].id, limit=limit)

    def get_profile_summary(self, tenant_slug: str, user_external_id: str) -> Optional[dict]:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return None
            return get_profile(db, user_id=found[1].id)

    def update_profile_summary(self, tenant_slug: str, user_external_id: str, summary: str) -> dict:
        embedder = self._user_embedder()
        with self._session() as db:
            _, user = identity.resolve_or_create(db, tenant_slug, user_external_id)
            return upsert_profile(db, embedder, user_id=user.id, summary=summary)

    def delete_profile_summary(self, tenant_slug: str, user_external_id: str) -> bool:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return False
            return delete_profile(db, user_id=found[1].id)

    def update_user(
        self,
        tenant_slug: str,
        user_external_id: str,
        display_name: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        with self._session() as db:
            _, user = identity.resolve_or_create(db, tenant_slug, user_external_id)
            user = identity.update_user(db, user, display_name=display_name, metadata=metadata)
            return serialize_user(user)

    def get_context(
        self,
        tenant_slug: str,
        user_external_id: str,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        include_org_notes: bool = False,
        org_note_categories: Optional[Sequence[str]] = None,
        include_org_memories: bool = False,
        org_memory_types: Optional[Sequence[str]] = None,
    ) -> dict:
        validate_context_options(recent_limit, org_note_categories, org_memory_types)
        with self._session() as db:
            tenant, user = identity.resolve_or_create(db, tenant_slug, user_external_id)
            tenant_id, user_id = tenant.id, user.id
        return compose_context(
            self.session_factory,
            tenant_id=tenant_id,
            user_id=user_id,
            recent_limit=recent_limit,
            include_org_notes=include_org_notes,
            org_note_categories=org_note_categories,
            include_org_memories=include_org_memories,
            org_memory_types=org_memory_types,
        )

    def process_conversation(self, tenant_slug: str, user_external_id: str, conversation) -> dict:
        require_extractor(self.extraction_provider)
        embedder = self._user_embedder()
        conversation = validate_conversation(conversation)
        with self._session() as db:
            _, user = identity.resolve_or_create(db, tenant_slug, user_external_id)
            return process_conversation(
                db,
                embedder,
                self.extraction_provider,
                user_id=user.id,
                conversation=conversation,
            )

    # ------------------------------------------------------------------
    # tenant scope
    # ------------------------------------------------------------------

    def add_tenant_note(
        self,
        tenant_slug: str,
        category: str,
        title: str,
        content: str,
        tags: Optional[Sequence[str]] = None,
        priority: Optional[int] = None,
        metadata: Optional[dict] = None,
        expires_at: Optional[datetime] = None,
    ) -> dict:
        embedder = self._tenant_embedder()
        with self._session() as db:
            tenant = identity.get_or_create_tenant(db, tenant_slug)
            return add_note(
                db,
                embedder,
                tenant_id=tenant.id,
                category=category,
                title=title,
                content=content,
                tags=tags,
                priority=priority,
                metadata=metadata,
                expires_at=expires_at,
            )

    def search_tenant_notes(
        self,
        tenant_slug: str,
        query: str,
        limit: int = 10,
        category: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> list[dict]:
        embedder = self._tenant_embedder()
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return []
            kwargs = {} if threshold is None else {"threshold": threshold}
            return search_notes(
                db, embedder, tenant_id=tenant.id, query=query, limit=limit, category=category, **kwargs
            )

    def get_tenant_notes_by_category(self, tenant_slug: str, category: str) -> list[dict]:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return []
            return get_notes_by_category(db, tenant_id=tenant.id, category=category)

    def set_tenant_note_active(self, tenant_slug: str, note_id, is_active: bool) -> Optional[dict]:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return None
            return set_note_active(
                db, tenant_id=tenant.id, note_id=coerce_id(note_id, "note_id"), is_active=is_active
            )

    def set_tenant_note_priority(self, tenant_slug: str, note_id, priority: int) -> Optional[dict]:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return None
            return set_note_priority(
                db, tenant_id=tenant.id, note_id=coerce_id(note_id, "note_id"), priority=priority
            )

    def add_tenant_memory(
        self,
        tenant_slug: str,
        content: str,
        memory_type: str,
        importance: Optional[int] = None,
        source_user_id=None,
        source_memory_id=None,
        metadata: Optional[dict] = None,
        expires_at: Optional[datetime] = None,
    ) -> dict:
        embedder = self._tenant_embedder()
        with self._session() as db:
            tenant = identity.get_or_create_tenant(db, tenant_slug)
            return _add_tenant_memory(
                db,
                embedder,
                tenant_id=tenant.id,
                content=content,
                memory_type=memory_type,
                importance=importance,
                source_user_id=coerce_id(source_user_id, "source_user_id"),
                source_memory_id=coerce_id(source_memory_id, "source_memory_id"),
                metadata=metadata,
                expires_at=expires_at,
            )

    def promote_memory_to_tenant(
        self,
        tenant_slug: str,
        source_memory_id,
        content: str,
        memory_type: str,
        importance: Optional[int] = None,
    ) -> dict:
        embedder = self._tenant_embedder()
        source_memory_id = coerce_id(source_memory_id, "source_memory_id")
        with self._session() as db:
            tenant = identity.get_or_create_tenant(db, tenant_slug)
            source_user_id = (
                db.query(MemoryItem.user_id)
                .join(User, User.id == MemoryItem.user_id)
                .filter(MemoryItem.id == source_memory_id)
                .filter(User.tenant_id == tenant.id)
                .scalar()
            )
            return promote_from_user(
                db,
                embedder,
                tenant_id=tenant.id,
                source_memory_id=source_memory_id,
                content=content,
                memory_type=memory_type,
                importance=importance,
                source_user_id=source_user_id,
            )

    def search_tenant_memories(
        self,
        tenant_slug: str,
        query: str,
        limit: int = 10,
        memory_type: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> list[dict]:
        embedder = self._tenant_embedder()
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return []
            kwargs = {} if threshold is None else {"threshold": threshold}
            return search_tenant_memories(
                db, embedder, tenant_id=tenant.id, query=query, limit=limit, memory_type=memory_type, **kwargs
            )

    # ------------------------------------------------------------------
    # admin
    # ------------------------------------------------------------------

    @staticmethod
    def _find_tenant(db, tenant_slug: str):
        identity.validate_slug(tenant_slug)
        return identity.get_tenant_by_slug(db, tenant_slug)

    def list_user_memories(self, tenant_slug: str, user_external_id: str) -> list[dict]:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return []
            return admin.list_user_memories(db, user_id=found[1].id)

    def list_tenant_notes(self, tenant_slug: str) -> list[dict]:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return []
            return admin.list_tenant_notes(db, tenant_id=tenant.id)

    def list_tenant_memories(self, tenant_slug: str) -> list[dict]:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return []
            return admin.list_tenant_memories(db, tenant_id=tenant.id)

    def purge_user_memories(self, tenant_slug: str, user_external_id: str, actor_id=None, reason=None) -> dict:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return {"deleted_count": 0}
            tenant, user = found
            return admin.purge_user_memories(db, tenant=tenant, user=user, actor_id=actor_id, reason=reason)

    def purge_tenant_notes(self, tenant_slug: str, actor_id=None, reason=None) -> dict:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return {"deleted_count": 0}
            return admin.purge_tenant_notes(db, tenant=tenant, actor_id=actor_id, reason=reason)

    def purge_tenant_memories(self, tenant_slug: str, actor_id=None, reason=None) -> dict:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return {"deleted_count": 0}
            return admin.purge_tenant_memories(db, tenant=tenant, actor_id=actor_id, reason=reason)

    def purge_user(self, tenant_slug: str, user_external_id: str, actor_id=None, reason=None) -> dict:
        with self._session() as db:
            found = identity.find_existing(db, tenant_slug, user_external_id)
            if found is None:
                return {"deleted_count": 0}
            tenant, user = found
            return admin.purge_user(db, tenant=tenant, user=user, actor_id=actor_id, reason=reason)

    def purge_tenant(self, tenant_slug: str, actor_id=None, reason=None) -> dict:
        with self._session() as db:
            tenant = self._find_tenant(db, tenant_slug)
            if tenant is None:
                return {"deleted_count": 0}
            return admin.purge_tenant(db, tenant=tenant, actor_id=actor_id, reason=reason)

    def list_audit_events(
        self,
        tenant_slug: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
        cursor: Optional[str] = None,
    ) -> dict:
        with self._session() as db:
            return list_audit_events(
                db, tenant_slug=tenant_slug, event_type=event_type, limit=limit, cursor=cursor
            )
