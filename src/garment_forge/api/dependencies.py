from __future__ import annotations

import os
from collections.abc import AsyncIterator

from fastapi import Header, HTTPException, status

from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.db.engine import get_engine
from garment_forge.db.postgres import PostgresDesignDatabase
from garment_forge.storage.local import LocalArtifactStorage

_db: PostgresDesignDatabase | None = None
_storage: LocalArtifactStorage | None = None


async def get_database() -> AsyncIterator[DesignDatabase]:
    """Yield a ``DesignDatabase`` instance, creating it lazily on first call."""
    global _db  # noqa: PLW0603
    if _db is None:
        _db = PostgresDesignDatabase(get_engine())
    yield _db


async def get_storage() -> AsyncIterator[ArtifactStorage]:
    """Yield the artifact storage configured through ``ARTIFACT_ROOT``."""
    global _storage  # noqa: PLW0603
    if _storage is None:
        _storage = LocalArtifactStorage.from_env()
    yield _storage


async def verify_bridge_token(authorization: str | None = Header(default=None)) -> None:
    """Require ``Authorization: Bearer <BRIDGE_API_TOKEN>`` when the token is configured."""
    expected = os.getenv("BRIDGE_API_TOKEN")
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bridge token.")


async def shutdown_database() -> None:
    global _db, _storage  # noqa: PLW0603
    if _db is not None:
        await _db.dispose()
        _db = None
    _storage = None
