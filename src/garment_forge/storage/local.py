"""Filesystem-backed artifact storage.

Refs are relative POSIX paths below the storage root, e.g.
``previews/3f2a….svg``. They are served by the API under ``ARTIFACT_BASE_URL``.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from pathlib import Path

from garment_forge.core.errors import ArtifactNotFoundError

DEFAULT_ARTIFACT_ROOT = "./artifacts"
DEFAULT_ARTIFACT_BASE_URL = "/artifacts"


class LocalArtifactStorage:
    def __init__(self, root: str | Path, base_url: str = DEFAULT_ARTIFACT_BASE_URL) -> None:
        self._root = Path(root).resolve()
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> LocalArtifactStorage:
        return cls(
            os.getenv("ARTIFACT_ROOT", DEFAULT_ARTIFACT_ROOT),
            os.getenv("ARTIFACT_BASE_URL", DEFAULT_ARTIFACT_BASE_URL),
        )

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, ref: str) -> Path:
        path = (self._root / ref).resolve()
        if path == self._root or not path.is_relative_to(self._root):
            raise ArtifactNotFoundError(f"Invalid artifact ref: {ref!r}")
        return path

    async def put(self, data: bytes, prefix: str, suffix: str = "") -> str:
        ref = f"{prefix.strip('/')}/{uuid.uuid4().hex}{suffix}"
        path = self._path(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
        return ref

    async def get(self, ref: str) -> bytes:
        path = self._path(ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise ArtifactNotFoundError(f"Artifact {ref} not found") from exc

    async def delete(self, ref: str) -> None:
        self._path(ref).unlink(missing_ok=True)

    def url_for(self, ref: str) -> str:
        return f"{self._base_url}/{ref}"
