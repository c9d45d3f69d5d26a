"""
Shared configuration for ContextVault.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("contextvault")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_str(env_name: str, default: str) -> str:
    return os.environ.get(env_name, default).strip().lower()


def _derive_effective_backends(db_backend: str, vector_backend: str) -> tuple[str, str]:
    db_effective = db_backend if db_backend in {"postgres", "sqlite"} else "postgres"
    vector_effective = vector_backend if vector_backend in {"pgvector", "none"} else "none"
    if db_effective == "sqlite" and vector_effective == "pgvector":
        vector_effective = "none"
    return db_effective, vector_effective


# Database settings
DB_BACKEND = _get_str("DB_BACKEND", "postgres")
VECTOR_BACKEND = _get_str("VECTOR_BACKEND", "pgvector")
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/contextvault.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
    DB_BACKEND,
    VECTOR_BACKEND,
)

# Database initialization controls
AUTO_CREATE_EXTENSIONS = _get_bool("AUTO_CREATE_EXTENSIONS", True)
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Embedding settings (user memories and profile summaries)
EMBEDDING_PROVIDER = _get_str("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL")
USER_EMBEDDING_DIM = _get_int("USER_EMBEDDING_DIM", 3072)

# Embedding settings (tenant notes and tenant memories)
TENANT_EMBEDDING_PROVIDER = _get_str("TENANT_EMBEDDING_PROVIDER", "gemini")
TENANT_EMBEDDING_MODEL = os.environ.get("TENANT_EMBEDDING_MODEL")
TENANT_EMBEDDING_DIM = _get_int("TENANT_EMBEDDING_DIM", 768)

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_BATCH_SIZE = _get_int("EMBEDDING_BATCH_SIZE", 100)

# Extraction settings
EXTRACTION_PROVIDER = _get_str("EXTRACTION_PROVIDER", "none")
EXTRACTION_MODEL = os.environ.get("EXTRACTION_MODEL", "gpt-4o-mini")
EXTRACTION_BASE_URL = os.environ.get("EXTRACTION_BASE_URL", "https://api.openai.com/v1")
EXTRACTION_TIMEOUT_SECONDS = _get_float("EXTRACTION_TIMEOUT_SECONDS", 60.0)

# Request/input limits
MAX_RESULT_LIMIT = _get_int("CONTEXTVAULT_MAX_RESULT_LIMIT", 100)
MAX_QUERY_LENGTH = _get_int("CONTEXTVAULT_MAX_QUERY_LENGTH", 4000)
MAX_TEXT_LENGTH = _get_int("CONTEXTVAULT_MAX_TEXT_LENGTH", 8000)
MAX_SHORT_TEXT_LENGTH = _get_int("CONTEXTVAULT_MAX_SHORT_TEXT_LENGTH", 255)
MAX_TYPE_LENGTH = _get_int("CONTEXTVAULT_MAX_TYPE_LENGTH", 50)
MAX_CATEGORY_LENGTH = _get_int("CONTEXTVAULT_MAX_CATEGORY_LENGTH", 100)
MAX_METADATA_BYTES = _get_int("CONTEXTVAULT_MAX_METADATA_BYTES", 20000)
MAX_TAG_ITEMS = _get_int("CONTEXTVAULT_MAX_TAG_ITEMS", 50)
MAX_CONVERSATION_MESSAGES = _get_int("CONTEXTVAULT_MAX_CONVERSATION_MESSAGES", 500)

# Retrieval defaults
DEFAULT_SEARCH_THRESHOLD = _get_float("DEFAULT_SEARCH_THRESHOLD", 0.3)
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_RECENT_LIMIT = 3
DEFAULT_IMPORTANCE = 5
DEFAULT_PRIORITY = 5


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if VECTOR_BACKEND not in {"pgvector", "none"}:
        errors.append("VECTOR_BACKEND must be 'pgvector' or 'none'")

    if DB_BACKEND == "sqlite" and VECTOR_BACKEND == "pgvector":
        errors.append("VECTOR_BACKEND=pgvector requires DB_BACKEND=postgres")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
        DB_BACKEND,
        VECTOR_BACKEND,
    )

    if VECTOR_BACKEND_EFFECTIVE == "pgvector" and EMBEDDING_PROVIDER == "none":
        errors.append("VECTOR_BACKEND=pgvector requires EMBEDDING_PROVIDER to be set")

    if EMBEDDING_PROVIDER not in {"openai", "gemini", "none"}:
        errors.append("EMBEDDING_PROVIDER must be 'openai', 'gemini', or 'none'")
    if TENANT_EMBEDDING_PROVIDER not in {"openai", "gemini", "none"}:
        errors.append("TENANT_EMBEDDING_PROVIDER must be 'openai', 'gemini', or 'none'")
    if EXTRACTION_PROVIDER not in {"openai", "none"}:
        errors.append("EXTRACTION_PROVIDER must be 'openai' or 'none'")

    if VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from contextvault.models import PGVECTOR_AVAILABLE

        if not PGVECTOR_AVAILABLE:
            errors.append("pgvector package is required when VECTOR_BACKEND=pgvector")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
