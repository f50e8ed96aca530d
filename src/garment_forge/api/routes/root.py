from __future__ import annotations

from typing import Any

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Root discovery endpoint listing the API's resources."""
    return {
        "jsonapi": {"version": "1.0"},
        "meta": {
            "title": "Garment Forge API",
            "description": "Customize garment templates, preview variants and queue production jobs.",
            "version": "0.1.0",
        },
        "links": {
            "self": "/",
            "variants": "/variants",
            "generate": "/variants/generate",
            "bridge-jobs": "/bridge/jobs",
            "openapi": "/openapi.json",
            "docs": "/docs",
        },
    }
