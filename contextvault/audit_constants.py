"""
Canonical audit event type strings.
"""

EVENT_USER_MEMORIES_PURGED = "memory.user_purged"
EVENT_TENANT_NOTES_PURGED = "memory.tenant_notes_purged"
EVENT_TENANT_MEMORIES_PURGED = "memory.tenant_memories_purged"
EVENT_USER_PURGED = "identity.user_purged"
EVENT_TENANT_PURGED = "identity.tenant_purged"

ACTOR_TENANT_ADMIN = "tenant_admin"

# What kind of row each purge event removes.
PURGE_TARGET_TYPES = {
    EVENT_USER_MEMORIES_PURGED: "memory",
    EVENT_TENANT_NOTES_PURGED: "tenant_note",
    EVENT_TENANT_MEMORIES_PURGED: "tenant_memory",
    EVENT_USER_PURGED: "user",
    EVENT_TENANT_PURGED: "tenant",
}

__all__ = [
    "EVENT_USER_MEMORIES_PURGED",
    "EVENT_TENANT_NOTES_PURGED",
    "EVENT_TENANT_MEMORIES_PURGED",
    "EVENT_USER_PURGED",
    "EVENT_TENANT_PURGED",
    "ACTOR_TENANT_ADMIN",
    "PURGE_TARGET_TYPES",
]
