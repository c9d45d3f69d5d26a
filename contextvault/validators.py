"""
Shared validation helpers for ContextVault services.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Sequence

from contextvault.config import (
    MAX_CONVERSATION_MESSAGES,
    MAX_METADATA_BYTES,
    MAX_TEXT_LENGTH,
)
from contextvault.errors import ValidationIssue

CONVERSATION_ROLES = {"user", "assistant", "system"}


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_limit(value: int, field: str, max_value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value <= 0 or value > max_value:
        raise ValidationIssue(f"{field} must be between 1 and {max_value}", field=field, error_type="out_of_range")


def validate_threshold(value: float, field: str = "threshold") -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type")
    if value < -1.0 or value > 1.0:
        raise ValidationIssue(f"{field} must be between -1.0 and 1.0", field=field, error_type="out_of_range")


def validate_score(value: Optional[int], field: str, low: int = 1, high: int = 10) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value < low or value > high:
        raise ValidationIssue(f"{field} must be between {low} and {high}", field=field, error_type="out_of_range")


def validate_string_list(
    values: Optional[Sequence[str]],
    field: str,
    max_items: int,
    max_item_length: int,
) -> None:
    if values is None:
        return
    if isinstance(values, str):
        raise ValidationIssue(f"{field} must be a list of strings", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationIssue(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")
    for item in values:
        if not isinstance(item, str):
            raise ValidationIssue(f"{field} must contain only strings", field=field, error_type="invalid_type")
        if len(item) > max_item_length:
            raise ValidationIssue(
                f"{field} item exceeds max length {max_item_length}",
                field=field,
                error_type="max_length",
            )


def validate_metadata(metadata: Optional[dict], field: str) -> None:
    if metadata is None:
        return
    if not isinstance(metadata, dict):
        raise ValidationIssue(f"{field} must be an object", field=field, error_type="invalid_type")
    try:
        size = len(json.dumps(metadata))
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc
    if size > MAX_METADATA_BYTES:
        raise ValidationIssue(
            f"{field} exceeds max size {MAX_METADATA_BYTES} bytes",
            field=field,
            error_type="max_bytes",
        )


def validate_embedding_text(text: str) -> None:
    validate_required_text(text, "text", MAX_TEXT_LENGTH)


def validate_conversation(messages, field: str = "conversation") -> list[dict]:
    """Check a transcript and return it as plain ``{"role", "content"}`` dicts."""
    if not isinstance(messages, (list, tuple)):
        raise ValidationIssue(f"{field} must be a list of messages", field=field, error_type="invalid_type")
    if len(messages) > MAX_CONVERSATION_MESSAGES:
        raise ValidationIssue(
            f"{field} exceeds max items {MAX_CONVERSATION_MESSAGES}",
            field=field,
            error_type="max_items",
        )
    normalized = []
    for message in messages:
        if isinstance(message, dict):
            role = message.get("role")
            content = message.get("content")
        else:
            role = getattr(message, "role", None)
            content = getattr(message, "content", None)
        if role not in CONVERSATION_ROLES:
            raise ValidationIssue(
                f"{field} role must be one of: user, assistant, system",
                field=field,
                error_type="invalid_value",
            )
        if not isinstance(content, str):
            raise ValidationIssue(f"{field} content must be a string", field=field, error_type="invalid_type")
        normalized.append({"role": role, "content": content})
    return normalized


def normalize_timestamp(value: Optional[datetime], field: str) -> Optional[datetime]:
    """Store timestamps as naive UTC, matching the ``datetime.utcnow`` defaults."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationIssue(f"{field} must be a datetime", field=field, error_type="invalid_type")
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
