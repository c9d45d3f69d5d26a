"""
Health endpoint: database, schema, and provider readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

import contextvault.config as config
from contextvault.db import DB, _get_schema_revisions
from contextvault.services.memory_service import MemoryService
from app.deps import get_memory_service


router = APIRouter()


def _check_db_health() -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            ext_version = None
            pgvector_installed = True
            if config.DB_BACKEND == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
                ext_version = conn.execute(
                    text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
                ).scalar()
                pgvector_installed = bool(ext_version)
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    current_rev, head_rev = _get_schema_revisions(DB.engine)
    schema_ok = head_rev is None or current_rev == head_rev
    return {
        "ok": schema_ok,
        "pgvector_installed": pgvector_installed,
        "pgvector_version": ext_version,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": schema_ok,
    }


def _provider_status(provider) -> dict:
    if provider is None:
        return {"status": "disabled"}
    status = {"status": "ready", "provider": getattr(provider, "name", "custom")}
    dimensions = getattr(provider, "dimensions", None)
    if dimensions is not None:
        status["dimensions"] = dimensions
    return status


@router.get("/health")
def health(service: MemoryService = Depends(get_memory_service)):
    """Health check endpoint."""
    db_health = _check_db_health()
    providers = {
        "embedding": _provider_status(service.embedding_provider),
        "tenant_embedding": _provider_status(
            service.tenant_embedding_provider or service.embedding_provider
        ),
        "extraction": _provider_status(service.extraction_provider),
    }
    vector_required = config.DB_BACKEND == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"
    if not db_health.get("ok") or (vector_required and not db_health.get("pgvector_installed")):
        raise HTTPException(status_code=503, detail={"database": db_health, "providers": providers})

    return {
        "status": "healthy",
        "service": "ContextVault",
        "version": "0.1.0",
        "database": db_health,
        "providers": providers,
    }
