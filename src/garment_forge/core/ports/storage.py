from typing import Protocol


class ArtifactStorage(Protocol):
    async def put(self, data: bytes, prefix: str, suffix: str = "") -> str: ...

    async def get(self, ref: str) -> bytes: ...

    async def delete(self, ref: str) -> None: ...

    def url_for(self, ref: str) -> str: ...
