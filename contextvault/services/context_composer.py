"""
Context assembly: fan out to the stores and render one prompt-ready block.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence

from contextvault.services.memory_shared import (
    DEFAULT_RECENT_LIMIT,
    MAX_CATEGORY_LENGTH,
    MAX_RESULT_LIMIT,
    MAX_TAG_ITEMS,
    MAX_TYPE_LENGTH,
    _validate_limit,
    _validate_string_list,
)
from contextvault.services.memory_store import get_recent_memories
from contextvault.services.profile_store import get_profile
from contextvault.services.tenant_memories import get_all_tenant_memories
from contextvault.services.tenant_notes import get_all_notes

NOTES_HEADING = "[Organization Notes]"
ORG_MEMORIES_HEADING = "[Organization Knowledge]"
PROFILE_HEADING = "[User Profile]"
RECENT_HEADING = "[Recent Interactions]"


def _note_line(note: dict) -> str:
    return f"- [{note['category']}] {note['title']}: {note['content']}"


def _memory_line(memory: dict) -> str:
    return f"- [{memory['memory_type']}] {memory['content']}"


def format_context(
    profile: Optional[dict],
    recent_memories: Sequence[dict],
    org_notes: Sequence[dict],
    org_memories: Sequence[dict],
) -> str:
    """
    Render the context block.

    Section order is fixed: notes, organization memories, profile, recent.
    Empty sections are left out entirely.
    """
    sections = []
    if org_notes:
        sections.append("\n".join([NOTES_HEADING] + [_note_line(n) for n in org_notes]))
    if org_memories:
        sections.append("\n".join([ORG_MEMORIES_HEADING] + [_memory_line(m) for m in org_memories]))
    if profile and profile.get("summary"):
        sections.append(f"{PROFILE_HEADING}\n{profile['summary']}")
    if recent_memories:
        sections.append("\n".join([RECENT_HEADING] + [_memory_line(m) for m in recent_memories]))
    return "\n\n".join(sections)


def validate_context_options(
    recent_limit: int,
    org_note_categories: Optional[Sequence[str]] = None,
    org_memory_types: Optional[Sequence[str]] = None,
) -> None:
    _validate_limit(recent_limit, "recent_limit", MAX_RESULT_LIMIT)
    _validate_string_list(org_note_categories, "org_note_categories", MAX_TAG_ITEMS, MAX_CATEGORY_LENGTH)
    _validate_string_list(org_memory_types, "org_memory_types", MAX_TAG_ITEMS, MAX_TYPE_LENGTH)


def _with_session(session_factory: Callable, fn, **kwargs):
    db = session_factory()
    try:
        return fn(db, **kwargs)
    finally:
        db.close()


def compose_context(
    session_factory: Callable,
    *,
    tenant_id,
    user_id,
    recent_limit: int = DEFAULT_RECENT_LIMIT,
    include_org_notes: bool = False,
    org_note_categories: Optional[Sequence[str]] = None,
    include_org_memories: bool = False,
    org_memory_types: Optional[Sequence[str]] = None,
) -> dict:
    """
    Fetch profile, recent memories, and optional organization knowledge for
    one user, then format them.

    The fetches are independent reads, so each runs on its own session in a
    worker thread.
    """
    validate_context_options(recent_limit, org_note_categories, org_memory_types)

    with ThreadPoolExecutor(max_workers=4) as pool:
        profile_future = pool.submit(_with_session, session_factory, get_profile, user_id=user_id)
        recent_future = pool.submit(
            _with_session, session_factory, get_recent_memories, user_id=user_id, limit=recent_limit
        )
        notes_future = (
            pool.submit(_with_session, session_factory, get_all_notes, tenant_id=tenant_id)
            if include_org_notes
            else None
        )
        org_memories_future = (
            pool.submit(
                _with_session,
                session_factory,
                get_all_tenant_memories,
                tenant_id=tenant_id,
                memory_types=org_memory_types,
            )
            if include_org_memories
            else None
        )

        profile = profile_future.result()
        recent = recent_future.result()
        notes = notes_future.result() if notes_future is not None else []
        org_memories = org_memories_future.result() if org_memories_future is not None else []

    if org_note_categories is not None:
        allowed = set(org_note_categories)
        notes = [note for note in notes if note["category"] in allowed]

    return {
        "profile": profile,
        "recent_memories": recent,
        "org_notes": notes,
        "org_memories": org_memories,
        "formatted": format_context(profile, recent, notes, org_memories),
    }
