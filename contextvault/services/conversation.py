"""
Conversation ingestion: extract memories, store them, fold them into the profile.
"""

from __future__ import annotations

from typing import Sequence

from contextvault.errors import ExtractionParseError, UnconfiguredCapability
from contextvault.services.memory_shared import logger
from contextvault.services.memory_store import add_memory
from contextvault.services.profile_store import get_profile, upsert_profile


def require_extractor(extractor) -> None:
    if extractor is None:
        raise UnconfiguredCapability("extraction provider")


def process_conversation(db, embedder, extractor, *, user_id, conversation: Sequence[dict]) -> dict:
    """
    Store every extracted memory with the transcript as provenance.

    When at least one memory was saved, the existing profile summary (empty
    when absent) is merged with the new contents and upserted. A failure
    partway through leaves the memories already committed in place; an empty
    merge result is reported as an extraction failure.
    """
    require_extractor(extractor)
    result = extractor.extract_memories(conversation)

    saved = []
    for candidate in result.memories:
        saved.append(
            add_memory(
                db,
                embedder,
                user_id=user_id,
                content=candidate.content,
                memory_type=candidate.memory_type,
                importance=candidate.importance,
                raw_conversation=conversation,
            )
        )

    profile_updated = False
    if saved:
        existing = get_profile(db, user_id=user_id)
        existing_summary = existing["summary"] if existing is not None else ""
        merged = extractor.merge_summary(existing_summary, [memory["content"] for memory in saved])
        if not isinstance(merged, str) or not merged.strip():
            raise ExtractionParseError("Summary merge returned no text")
        upsert_profile(db, embedder, user_id=user_id, summary=merged)
        profile_updated = True

    logger.info(
        "conversation_processed",
        extra={"user_id": str(user_id), "memories": len(saved), "profile_updated": profile_updated},
    )
    return {"memories": saved, "profile_updated": profile_updated}
