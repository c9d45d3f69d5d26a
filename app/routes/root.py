"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import contextvault.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "ContextVault",
        "version": "0.1.0",
        "description": "Multi-tenant semantic memory and context assembly",
        "embedding_provider": config.EMBEDDING_PROVIDER,
        "tenant_embedding_provider": config.TENANT_EMBEDDING_PROVIDER,
        "extraction_provider": config.EXTRACTION_PROVIDER,
        "endpoints": {
            "health": "/health",
            "tenants": "/v1/tenants/{slug}",
        },
    }
