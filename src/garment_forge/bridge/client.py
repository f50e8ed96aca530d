"""HTTP client the bridge agent uses to talk to the web service."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx

from garment_forge.models import ExportFormat, JobTicket

logger = logging.getLogger(__name__)


class BridgeClientError(Exception):
    """Base error for failed calls to the web service."""


class DownloadError(BridgeClientError):
    """A master document or asset could not be fetched."""


class UploadError(BridgeClientError):
    """An exported file could not be uploaded."""


def _handle_response_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    request = response.request
    raise BridgeClientError(f"{request.method} {request.url.path} -> {response.status_code}: {detail}")


class WebServiceClient:
    """Thin async wrapper over the ``/bridge`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> WebServiceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def claim_jobs(self, limit: int) -> list[JobTicket]:
        response = await self._client.post("/bridge/jobs/claim", params={"limit": limit})
        _handle_response_error(response)
        return [JobTicket.model_validate(entry) for entry in response.json()["jobs"]]

    async def update_job(
        self,
        job_id: str,
        status: str,
        *,
        error_message: str | None = None,
        final_artifact_ref: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": status}
        if error_message is not None:
            payload["errorMessage"] = error_message
        if final_artifact_ref is not None:
            payload["finalArtifactRef"] = final_artifact_ref
        response = await self._client.patch(f"/bridge/jobs/{job_id}", json=payload)
        _handle_response_error(response)
        return response.json()

    async def download(self, url: str, destination: Path) -> Path:
        """Fetch ``url`` (absolute, or relative to the web service) into ``destination``."""
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download {url}: {exc}") from exc
        if not response.is_success:
            raise DownloadError(f"Failed to download {url}: HTTP {response.status_code}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        logger.debug("downloaded %s (%d bytes)", url, len(response.content))
        return destination

    async def upload_artifact(self, job_id: str, fmt: ExportFormat, path: Path) -> str:
        """Upload one exported file for a job and return its artifact ref."""
        try:
            response = await self._client.put(
                f"/bridge/jobs/{job_id}/artifacts/{fmt.value}",
                content=path.read_bytes(),
                headers={"Content-Type": "application/octet-stream"},
            )
        except (httpx.HTTPError, OSError) as exc:
            raise UploadError(f"Failed to upload {path.name}: {exc}") from exc
        if not response.is_success:
            raise UploadError(f"Failed to upload {path.name}: HTTP {response.status_code}")
        return str(response.json()["ref"])
