"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Request

from contextvault.services.memory_service import MemoryService


def get_memory_service(request: Request) -> MemoryService:
    service = getattr(request.app.state, "memory_service", None)
    if service is None:
        raise RuntimeError("Memory service not initialized")
    return service
