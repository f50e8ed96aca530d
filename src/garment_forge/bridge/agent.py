"""Bridge agent: pull claimed jobs, run them in the design tool, report back."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import shutil
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from garment_forge.bridge.client import BridgeClientError, DownloadError, UploadError, WebServiceClient
from garment_forge.bridge.executor import AutomationInvocationError, ScriptExecutor
from garment_forge.bridge.exports import ExportResult, NoExportsError, collect_exports, export_path
from garment_forge.bridge.script import render_script, write_script
from garment_forge.bridge.settings import BridgeSettings
from garment_forge.models import MASTER_FORMAT, JobTicket

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_-]+")


def output_name(variant_name: str, now: datetime | None = None) -> str:
    stamp = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
    safe = _UNSAFE_NAME.sub("_", variant_name).strip("_") or "variant"
    return f"{safe}-{stamp}"


def _suffix(url: str, default: str) -> str:
    return Path(urlparse(url).path).suffix or default


class BridgeAgent:
    """Processes job tickets one at a time. A failing job never stops the batch."""

    def __init__(self, client: WebServiceClient, executor: ScriptExecutor, settings: BridgeSettings) -> None:
        self.client = client
        self.executor = executor
        self.settings = settings

    async def process_batch(self, tickets: Sequence[JobTicket]) -> list[bool]:
        results = []
        for ticket in tickets:
            results.append(await self.process_job(ticket))
        succeeded = sum(results)
        logger.info("batch done: %d succeeded, %d failed", succeeded, len(results) - succeeded)
        return results

    async def process_job(self, ticket: JobTicket) -> bool:
        job_id = ticket.job.id
        try:
            await self._run(ticket)
        except (DownloadError, AutomationInvocationError, NoExportsError) as exc:
            logger.warning("job %s failed: %s", job_id, exc)
            await self._report_failure(job_id, str(exc))
            return False
        except Exception as exc:
            logger.exception("job %s crashed", job_id)
            await self._report_failure(job_id, f"Unexpected error: {exc}")
            return False
        return True

    async def _run(self, ticket: JobTicket) -> None:
        job = ticket.job
        await self.client.update_job(job.id, "processing")
        if ticket.variant is None:
            raise DownloadError(f"Variant {job.variant_id} no longer exists")
        if not ticket.master_document_url:
            raise DownloadError(f"Variant {ticket.variant.id} has no master document")

        work_dir = self.settings.temp_dir / job.id
        output_base = self.settings.output_dir / output_name(ticket.variant.name)
        self.settings.output_dir.mkdir(parents=True, exist_ok=True)
        try:
            template_path = await self.client.download(
                ticket.master_document_url,
                work_dir / f"master{_suffix(ticket.master_document_url, '.ai')}",
            )
            instructions = await self._localize_assets(ticket.instructions, work_dir / "assets")
            script_path = write_script(render_script(template_path, output_base, instructions), work_dir)
            try:
                await self.executor.run(script_path)
            finally:
                # The rendered script is removed even when delete_temp_files is off.
                script_path.unlink(missing_ok=True)

            results = await self._upload_exports(job.id, collect_exports(output_base, self.settings.export_formats))
            uploaded = [r for r in results if r.ref is not None]
            if not uploaded:
                raise NoExportsError("No export files were produced")
            final = next((r for r in uploaded if r.fmt is MASTER_FORMAT), uploaded[0])
            await self.client.update_job(job.id, "completed", final_artifact_ref=final.ref)
            logger.info("job %s completed with %s", job.id, ", ".join(r.fmt.value for r in uploaded))
        finally:
            self._cleanup(work_dir, output_base)

    async def _localize_assets(self, instructions: dict[str, Any], asset_dir: Path) -> dict[str, Any]:
        """Download every asset URL and point the instructions at the local copies."""
        assets = dict(instructions.get("assets") or {})
        local: dict[str, str] = {}
        for asset_id, url in (assets.get("urls") or {}).items():
            name = _UNSAFE_NAME.sub("_", asset_id)
            path = await self.client.download(url, asset_dir / f"{name}{_suffix(url, '')}")
            local[asset_id] = str(path)
        assets["urls"] = local
        return {**instructions, "assets": assets}

    async def _upload_exports(self, job_id: str, exports: list[ExportResult]) -> list[ExportResult]:
        """Upload every produced export. Failed uploads come back with ``error`` set."""
        results: list[ExportResult] = []
        for export in exports:
            if not export.ok or export.path is None:
                results.append(export)
                continue
            try:
                ref = await self.client.upload_artifact(job_id, export.fmt, export.path)
            except UploadError as exc:
                logger.error("job %s: %s", job_id, exc)
                results.append(replace(export, error=str(exc)))
                continue
            results.append(replace(export, ref=ref))
        return results

    async def _report_failure(self, job_id: str, message: str) -> None:
        try:
            await self.client.update_job(job_id, "failed", error_message=message)
        except Exception:
            logger.exception("could not report failure of job %s", job_id)

    def _cleanup(self, work_dir: Path, output_base: Path) -> None:
        if self.settings.delete_temp_files:
            shutil.rmtree(work_dir, ignore_errors=True)
        if not self.settings.keep_output_files:
            for fmt in self.settings.export_formats:
                export_path(output_base, fmt).unlink(missing_ok=True)


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    PROCESSING = "processing"


class BridgeScheduler:
    """Polls for work every ``poll_interval`` seconds.

    Ticks fire on a fixed interval; a tick that finds the previous one still
    running returns immediately.
    """

    def __init__(self, client: WebServiceClient, agent: BridgeAgent, *, poll_interval: float, batch_size: int) -> None:
        self.client = client
        self.agent = agent
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.state = SchedulerState.IDLE
        self._stopping = asyncio.Event()
        self._ticks: set[asyncio.Task[int]] = set()

    async def tick(self) -> int:
        """Claim and process one batch. Returns the number of jobs handled."""
        if self.state is not SchedulerState.IDLE:
            logger.debug("previous tick still %s, skipping", self.state.value)
            return 0
        self.state = SchedulerState.POLLING
        try:
            try:
                tickets = await self.client.claim_jobs(self.batch_size)
            except (BridgeClientError, httpx.HTTPError) as exc:
                logger.error("polling for jobs failed: %s", exc)
                return 0
            if not tickets:
                return 0
            logger.info("claimed %d job(s)", len(tickets))
            self.state = SchedulerState.PROCESSING
            await self.agent.process_batch(tickets)
            return len(tickets)
        finally:
            self.state = SchedulerState.IDLE

    async def _safe_tick(self) -> int:
        try:
            return await self.tick()
        except Exception:
            logger.exception("tick failed")
            return 0

    async def run(self) -> None:
        logger.info("bridge polling every %gs for up to %d job(s)", self.poll_interval, self.batch_size)
        while not self._stopping.is_set():
            task = asyncio.create_task(self._safe_tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        if self._ticks:
            await asyncio.gather(*self._ticks)
        logger.info("bridge stopped")

    def stop(self) -> None:
        self._stopping.set()
