"""
FastAPI app wiring for ContextVault.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import contextvault.config as config
from contextvault.db import close_db, init_db
from contextvault.providers import embedding_provider_from_env, extraction_provider_from_env
from contextvault.services.memory_service import MemoryService
from app.errors import configure_exception_handlers
from app.routes.health import router as health_router
from app.routes.memory import router as memory_router
from app.routes.root import router as root_router


def _service_from_env() -> MemoryService:
    return MemoryService(
        embedding_provider=embedding_provider_from_env("user"),
        tenant_embedding_provider=embedding_provider_from_env("tenant"),
        extraction_provider=extraction_provider_from_env(),
    )


def create_app(memory_service: Optional[MemoryService] = None) -> FastAPI:
    """Build the app; an injected service skips database and provider setup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        owns_service = memory_service is None
        if owns_service:
            init_db()
            app.state.memory_service = _service_from_env()
        else:
            app.state.memory_service = memory_service
        try:
            yield
        finally:
            if owns_service:
                app.state.memory_service.close()
                close_db()
                config.logger.info("Shutdown complete")

    app = FastAPI(title="ContextVault", redirect_slashes=False, lifespan=lifespan)
    configure_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(root_router)
    app.include_router(memory_router)
    return app


app = create_app()
