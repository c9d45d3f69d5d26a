"""
One rolling, versioned profile summary per user.

Upsert is a full replace: the stored summary and its embedding are swapped
out and the version is bumped. The bump happens inside the database in the
same statement as the insert, so concurrent upserts each count once and the
summary left behind is whichever write the database applied last.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from contextvault.models import ProfileSummary
from contextvault.services.memory_shared import (
    MAX_TEXT_LENGTH,
    _validate_required_text,
    dialect_insert,
    logger,
    serialize_profile,
)


def _get_row(db, user_id) -> Optional[ProfileSummary]:
    return db.query(ProfileSummary).filter(ProfileSummary.user_id == user_id).first()


def get_profile(db, *, user_id) -> Optional[dict]:
    row = _get_row(db, user_id)
    return serialize_profile(row) if row is not None else None


def upsert_profile(db, embedder, *, user_id, summary: str) -> dict:
    _validate_required_text(summary, "summary", MAX_TEXT_LENGTH)
    embedding = embedder.embed(summary)

    now = datetime.utcnow()
    stmt = dialect_insert(db, ProfileSummary).values(
        user_id=user_id,
        summary=summary,
        summary_embedding=embedding,
        version=1,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "summary": stmt.excluded.summary,
            "summary_embedding": stmt.excluded.summary_embedding,
            "version": ProfileSummary.version + 1,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    db.commit()

    row = _get_row(db, user_id)
    db.refresh(row)
    logger.info("profile_upserted", extra={"user_id": str(user_id), "version": row.version})
    return serialize_profile(row)


def delete_profile(db, *, user_id) -> bool:
    deleted = db.query(ProfileSummary).filter(ProfileSummary.user_id == user_id).delete(
        synchronize_session=False
    )
    db.commit()
    return bool(deleted)
