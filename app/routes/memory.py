"""
Tenant-scoped HTTP routes. Each handler maps one request onto MemoryService.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from contextvault.services.memory_service import MemoryService
from app.deps import get_memory_service


router = APIRouter(prefix="/v1/tenants/{slug}", tags=["memory"])


# =============================================================================
# Request bodies
# =============================================================================

class ConversationMessageIn(BaseModel):
    role: str
    content: str


class AddMemoryRequest(BaseModel):
    content: str
    memory_type: str
    importance: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None
    raw_conversation: Optional[list[ConversationMessageIn]] = None
    expires_at: Optional[datetime] = None


class SearchRequest(BaseModel):
    query: str
    limit: int = 10
    threshold: Optional[float] = None


class NoteSearchRequest(SearchRequest):
    category: Optional[str] = None


class TenantMemorySearchRequest(SearchRequest):
    memory_type: Optional[str] = None


class ProfileRequest(BaseModel):
    summary: str


class UpdateUserRequest(BaseModel):
    display_name: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ContextRequest(BaseModel):
    recent_limit: int = 3
    include_org_notes: bool = False
    org_note_categories: Optional[list[str]] = None
    include_org_memories: bool = False
    org_memory_types: Optional[list[str]] = None


class ConversationRequest(BaseModel):
    conversation: list[ConversationMessageIn] = Field(default_factory=list)


class AddNoteRequest(BaseModel):
    category: str
    title: str
    content: str
    tags: Optional[list[str]] = None
    priority: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = None


class UpdateNoteRequest(BaseModel):
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class AddTenantMemoryRequest(BaseModel):
    content: str
    memory_type: str
    importance: Optional[int] = None
    source_user_id: Optional[str] = None
    source_memory_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = None


class PromoteRequest(BaseModel):
    source_memory_id: str
    content: str
    memory_type: str
    importance: Optional[int] = None


class PurgeRequest(BaseModel):
    actor_id: Optional[str] = None
    reason: Optional[str] = None


def _messages(messages: Optional[list[ConversationMessageIn]]) -> Optional[list[dict]]:
    if messages is None:
        return None
    return [message.model_dump() for message in messages]


# =============================================================================
# User scope
# =============================================================================

@router.post("/users/{external_id}/memories", status_code=201)
def add_memory(
    slug: str,
    external_id: str,
    body: AddMemoryRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.add_memory(
        slug,
        external_id,
        body.content,
        body.memory_type,
        importance=body.importance,
        metadata=body.metadata,
        raw_conversation=_messages(body.raw_conversation),
        expires_at=body.expires_at,
    )


@router.post("/users/{external_id}/memories/search")
def search_memories(
    slug: str,
    external_id: str,
    body: SearchRequest,
    service: MemoryService = Depends(get_memory_service),
):
    results = service.search(slug, external_id, body.query, limit=body.limit, threshold=body.threshold)
    return {"count": len(results), "results": results}


@router.get("/users/{external_id}/memories/recent")
def recent_memories(
    slug: str,
    external_id: str,
    limit: int = 10,
    service: MemoryService = Depends(get_memory_service),
):
    results = service.get_recent_memories(slug, external_id, limit=limit)
    return {"count": len(results), "results": results}


@router.get("/users/{external_id}/profile")
def get_profile(slug: str, external_id: str, service: MemoryService = Depends(get_memory_service)):
    return {"profile": service.get_profile_summary(slug, external_id)}


@router.put("/users/{external_id}/profile")
def put_profile(
    slug: str,
    external_id: str,
    body: ProfileRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return {"profile": service.update_profile_summary(slug, external_id, body.summary)}


@router.delete("/users/{external_id}/profile")
def delete_profile(slug: str, external_id: str, service: MemoryService = Depends(get_memory_service)):
    return {"deleted": service.delete_profile_summary(slug, external_id)}


@router.patch("/users/{external_id}")
def update_user(
    slug: str,
    external_id: str,
    body: UpdateUserRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.update_user(slug, external_id, display_name=body.display_name, metadata=body.metadata)


@router.post("/users/{external_id}/context")
def get_context(
    slug: str,
    external_id: str,
    body: ContextRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.get_context(
        slug,
        external_id,
        recent_limit=body.recent_limit,
        include_org_notes=body.include_org_notes,
        org_note_categories=body.org_note_categories,
        include_org_memories=body.include_org_memories,
        org_memory_types=body.org_memory_types,
    )


@router.post("/users/{external_id}/conversations")
def process_conversation(
    slug: str,
    external_id: str,
    body: ConversationRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.process_conversation(slug, external_id, _messages(body.conversation))


# =============================================================================
# Tenant scope
# =============================================================================

@router.post("/notes", status_code=201)
def add_note(slug: str, body: AddNoteRequest, service: MemoryService = Depends(get_memory_service)):
    return service.add_tenant_note(
        slug,
        body.category,
        body.title,
        body.content,
        tags=body.tags,
        priority=body.priority,
        metadata=body.metadata,
        expires_at=body.expires_at,
    )


@router.post("/notes/search")
def search_notes(slug: str, body: NoteSearchRequest, service: MemoryService = Depends(get_memory_service)):
    results = service.search_tenant_notes(
        slug, body.query, limit=body.limit, category=body.category, threshold=body.threshold
    )
    return {"count": len(results), "results": results}


@router.get("/notes")
def notes_by_category(slug: str, category: str, service: MemoryService = Depends(get_memory_service)):
    results = service.get_tenant_notes_by_category(slug, category)
    return {"count": len(results), "results": results}


@router.patch("/notes/{note_id}")
def update_note(
    slug: str,
    note_id: str,
    body: UpdateNoteRequest,
    service: MemoryService = Depends(get_memory_service),
):
    note = None
    if body.is_active is not None:
        note = service.set_tenant_note_active(slug, note_id, body.is_active)
        if note is None:
            raise HTTPException(status_code=404, detail="note not found")
    if body.priority is not None:
        note = service.set_tenant_note_priority(slug, note_id, body.priority)
        if note is None:
            raise HTTPException(status_code=404, detail="note not found")
    if note is None:
        raise HTTPException(status_code=400, detail="nothing to update")
    return note


@router.post("/tenant-memories", status_code=201)
def add_tenant_memory(
    slug: str,
    body: AddTenantMemoryRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.add_tenant_memory(
        slug,
        body.content,
        body.memory_type,
        importance=body.importance,
        source_user_id=body.source_user_id,
        source_memory_id=body.source_memory_id,
        metadata=body.metadata,
        expires_at=body.expires_at,
    )


@router.post("/tenant-memories/promote", status_code=201)
def promote_memory(slug: str, body: PromoteRequest, service: MemoryService = Depends(get_memory_service)):
    return service.promote_memory_to_tenant(
        slug,
        body.source_memory_id,
        body.content,
        body.memory_type,
        importance=body.importance,
    )


@router.post("/tenant-memories/search")
def search_tenant_memories(
    slug: str,
    body: TenantMemorySearchRequest,
    service: MemoryService = Depends(get_memory_service),
):
    results = service.search_tenant_memories(
        slug, body.query, limit=body.limit, memory_type=body.memory_type, threshold=body.threshold
    )
    return {"count": len(results), "results": results}


# =============================================================================
# Admin
# =============================================================================

@router.get("/admin/users/{external_id}/memories")
def admin_list_user_memories(slug: str, external_id: str, service: MemoryService = Depends(get_memory_service)):
    results = service.list_user_memories(slug, external_id)
    return {"count": len(results), "results": results}


@router.get("/admin/notes")
def admin_list_notes(slug: str, service: MemoryService = Depends(get_memory_service)):
    results = service.list_tenant_notes(slug)
    return {"count": len(results), "results": results}


@router.get("/admin/tenant-memories")
def admin_list_tenant_memories(slug: str, service: MemoryService = Depends(get_memory_service)):
    results = service.list_tenant_memories(slug)
    return {"count": len(results), "results": results}


@router.post("/admin/users/{external_id}/memories/purge")
def admin_purge_user_memories(
    slug: str,
    external_id: str,
    body: PurgeRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.purge_user_memories(slug, external_id, actor_id=body.actor_id, reason=body.reason)


@router.post("/admin/notes/purge")
def admin_purge_notes(slug: str, body: PurgeRequest, service: MemoryService = Depends(get_memory_service)):
    return service.purge_tenant_notes(slug, actor_id=body.actor_id, reason=body.reason)


@router.post("/admin/tenant-memories/purge")
def admin_purge_tenant_memories(
    slug: str,
    body: PurgeRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.purge_tenant_memories(slug, actor_id=body.actor_id, reason=body.reason)


@router.post("/admin/users/{external_id}/purge")
def admin_purge_user(
    slug: str,
    external_id: str,
    body: PurgeRequest,
    service: MemoryService = Depends(get_memory_service),
):
    return service.purge_user(slug, external_id, actor_id=body.actor_id, reason=body.reason)


@router.post("/admin/purge")
def admin_purge_tenant(slug: str, body: PurgeRequest, service: MemoryService = Depends(get_memory_service)):
    return service.purge_tenant(slug, actor_id=body.actor_id, reason=body.reason)


@router.get("/admin/audit-events")
def admin_audit_events(
    slug: str,
    event_type: Optional[str] = None,
    limit: int = 100,
    cursor: Optional[str] = None,
    service: MemoryService = Depends(get_memory_service),
):
    return service.list_audit_events(tenant_slug=slug, event_type=event_type, limit=limit, cursor=cursor)
