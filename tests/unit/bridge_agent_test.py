"""End-to-end tests for the bridge agent against the real web app."""

from __future__ import annotations

import asyncio
import dataclasses
import re
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import cast
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from garment_forge.api.app import create_app
from garment_forge.api.dependencies import get_database, get_storage
from garment_forge.bridge.agent import BridgeAgent, BridgeScheduler, SchedulerState, output_name
from garment_forge.bridge.client import UploadError, WebServiceClient
from garment_forge.bridge.executor import AutomationTimeoutError, ScriptExecutor, ScriptResult
from garment_forge.bridge.exports import collect_exports
from garment_forge.bridge.settings import BridgeSettings
from garment_forge.core import jobs as job_service
from garment_forge.core import variants as variant_service
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.db import InMemoryDesignDatabase
from garment_forge.models import DesignVariant, ExportFormat, JobStatus, VariantConfiguration, VariantStatus
from garment_forge.storage.local import LocalArtifactStorage
from tests.conftest import seed_catalog

_OUTPUT_BASE = re.compile(r"var OUTPUT_BASE_PATH = '(.*)';")
_TEMPLATE_PATH = re.compile(r"var TEMPLATE_PATH = '(.*)';")

CONFIG = VariantConfiguration.model_validate(
    {
        "colors": [{"layerName": "Body", "colorId": "red"}],
        "logoSlots": [{"slotName": "chest-logo", "logoId": "eagle"}],
    }
)


class FakeExecutor(ScriptExecutor):
    """Stands in for the design tool: writes export files, or fails on chosen calls."""

    def __init__(
        self,
        formats: tuple[ExportFormat, ...] = tuple(ExportFormat),
        timeout_on: frozenset[int] = frozenset(),
    ) -> None:
        super().__init__("design-tool", platform="win32")
        self.formats = formats
        self.timeout_on = timeout_on
        self.calls = 0
        self.templates: list[Path] = []

    async def run(self, script_path: Path) -> ScriptResult:
        self.calls += 1
        text = script_path.read_text(encoding="utf-8")
        template = _TEMPLATE_PATH.search(text)
        assert template is not None
        self.templates.append(Path(template.group(1)))
        if self.calls in self.timeout_on:
            raise AutomationTimeoutError("Script timed out after 60s")
        match = _OUTPUT_BASE.search(text)
        assert match is not None
        base = Path(match.group(1))
        for fmt in self.formats:
            base.with_name(f"{base.name}.{fmt.value}").write_bytes(f"{fmt.value} export".encode())
        return ScriptResult(returncode=0, stdout="SUCCESS", stderr="")


@pytest.fixture
def app_client(
    in_memory_db: InMemoryDesignDatabase, storage: LocalArtifactStorage, monkeypatch: pytest.MonkeyPatch
) -> Iterator[WebServiceClient]:
    monkeypatch.delenv("BRIDGE_API_TOKEN", raising=False)
    app = create_app()

    async def _db() -> AsyncIterator[DesignDatabase]:
        yield cast(DesignDatabase, in_memory_db)

    async def _storage() -> AsyncIterator[ArtifactStorage]:
        yield cast(ArtifactStorage, storage)

    app.dependency_overrides[get_database] = _db
    app.dependency_overrides[get_storage] = _storage
    yield WebServiceClient("http://testserver", transport=httpx.ASGITransport(app=app))


@pytest.fixture
def settings(tmp_path: Path) -> BridgeSettings:
    return BridgeSettings(
        web_app_url="http://testserver",
        temp_dir=tmp_path / "bridge-tmp",
        output_dir=tmp_path / "bridge-out",
        poll_interval=0.01,
    )


async def _queue(db: InMemoryDesignDatabase, storage: LocalArtifactStorage, count: int) -> list[DesignVariant]:
    item = await seed_catalog(db, storage)
    variants: list[DesignVariant] = []
    for _ in range(count):
        variants.extend(await variant_service.generate_variants(db, storage, item.id, CONFIG))
    await job_service.enqueue_jobs(db, [v.id for v in variants])
    return variants


class TestBridgeEndToEnd:
    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_batch(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        first, second, third = await _queue(in_memory_db, storage, 3)
        executor = FakeExecutor(timeout_on=frozenset({2}))
        agent = BridgeAgent(app_client, executor, settings)
        scheduler = BridgeScheduler(app_client, agent, poll_interval=0.01, batch_size=5)

        handled = await scheduler.tick()
        await app_client.aclose()

        assert handled == 3
        assert executor.calls == 3
        statuses = {v.id: (await in_memory_db.get_variant(v.id)) for v in (first, second, third)}
        assert statuses[first.id] is not None and statuses[first.id].status is VariantStatus.GENERATED
        assert statuses[third.id] is not None and statuses[third.id].status is VariantStatus.GENERATED
        failed = statuses[second.id]
        assert failed is not None
        assert failed.status is VariantStatus.PREVIEW
        assert failed.error_message == "Script timed out after 60s"

        jobs = {job.variant_id: job for job in await in_memory_db.list_jobs()}
        assert jobs[first.id].status is JobStatus.COMPLETED
        assert jobs[second.id].status is JobStatus.FAILED
        assert set(jobs[first.id].artifacts) == {"ai", "svg", "pdf", "png"}

    @pytest.mark.asyncio
    async def test_master_document_is_final_artifact(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        [variant] = await _queue(in_memory_db, storage, 1)
        executor = FakeExecutor()
        agent = BridgeAgent(app_client, executor, settings)
        [ticket] = await app_client.claim_jobs(5)

        assert await agent.process_job(ticket) is True
        await app_client.aclose()

        stored = await in_memory_db.get_variant(variant.id)
        assert stored is not None and stored.final_artifact_ref is not None
        assert stored.final_artifact_ref.endswith(".ai")
        assert await storage.get(stored.final_artifact_ref) == b"ai export"
        assert executor.templates[0].name == "master.ai"

    @pytest.mark.asyncio
    async def test_partial_exports_still_complete(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        [variant] = await _queue(in_memory_db, storage, 1)
        agent = BridgeAgent(app_client, FakeExecutor(formats=(ExportFormat.PNG,)), settings)
        [ticket] = await app_client.claim_jobs(5)

        assert await agent.process_job(ticket) is True
        await app_client.aclose()

        [job] = await in_memory_db.list_jobs()
        assert job.status is JobStatus.COMPLETED
        assert set(job.artifacts) == {"png"}
        stored = await in_memory_db.get_variant(variant.id)
        assert stored is not None and stored.final_artifact_ref == job.artifacts["png"]

    @pytest.mark.asyncio
    async def test_failed_upload_keeps_other_exports(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        [variant] = await _queue(in_memory_db, storage, 1)
        real_upload = app_client.upload_artifact

        async def _flaky_upload(job_id: str, fmt: ExportFormat, path: Path) -> str:
            if fmt is ExportFormat.AI:
                raise UploadError(f"Failed to upload {path.name}: HTTP 500")
            return await real_upload(job_id, fmt, path)

        monkeypatch.setattr(app_client, "upload_artifact", _flaky_upload)
        agent = BridgeAgent(app_client, FakeExecutor(), settings)
        [ticket] = await app_client.claim_jobs(5)

        assert await agent.process_job(ticket) is True
        await app_client.aclose()

        [job] = await in_memory_db.list_jobs()
        assert job.status is JobStatus.COMPLETED
        assert set(job.artifacts) == {"svg", "pdf", "png"}
        stored = await in_memory_db.get_variant(variant.id)
        assert stored is not None and stored.final_artifact_ref == job.artifacts["svg"]

    @pytest.mark.asyncio
    async def test_no_exports_fails_job(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        [variant] = await _queue(in_memory_db, storage, 1)
        agent = BridgeAgent(app_client, FakeExecutor(formats=()), settings)
        [ticket] = await app_client.claim_jobs(5)

        assert await agent.process_job(ticket) is False
        await app_client.aclose()

        stored = await in_memory_db.get_variant(variant.id)
        assert stored is not None
        assert stored.status is VariantStatus.PREVIEW
        assert stored.error_message == "No export files were produced"

    @pytest.mark.asyncio
    async def test_missing_master_document_fails_job(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        [variant] = await _queue(in_memory_db, storage, 1)
        template = in_memory_db.templates["tpl-1"]
        assert template.master_document_ref is not None
        await storage.delete(template.master_document_ref)
        executor = FakeExecutor()
        agent = BridgeAgent(app_client, executor, settings)
        [ticket] = await app_client.claim_jobs(5)

        assert await agent.process_job(ticket) is False
        await app_client.aclose()

        assert executor.calls == 0
        stored = await in_memory_db.get_variant(variant.id)
        assert stored is not None and stored.error_message is not None
        assert "Failed to download" in stored.error_message

    @pytest.mark.asyncio
    async def test_cleanup_removes_work_and_output_files(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
    ) -> None:
        await _queue(in_memory_db, storage, 1)
        agent = BridgeAgent(app_client, FakeExecutor(), settings)
        [ticket] = await app_client.claim_jobs(5)

        await agent.process_job(ticket)
        await app_client.aclose()

        assert not (settings.temp_dir / ticket.job.id).exists()
        assert list(settings.output_dir.iterdir()) == []

    @pytest.mark.parametrize("timeout_on", [frozenset(), frozenset({1})])
    @pytest.mark.asyncio
    async def test_script_removed_when_temp_files_are_kept(
        self,
        in_memory_db: InMemoryDesignDatabase,
        storage: LocalArtifactStorage,
        app_client: WebServiceClient,
        settings: BridgeSettings,
        timeout_on: frozenset[int],
    ) -> None:
        await _queue(in_memory_db, storage, 1)
        keep_temp = dataclasses.replace(settings, delete_temp_files=False)
        agent = BridgeAgent(app_client, FakeExecutor(timeout_on=timeout_on), keep_temp)
        [ticket] = await app_client.claim_jobs(5)

        await agent.process_job(ticket)
        await app_client.aclose()

        work_dir = keep_temp.temp_dir / ticket.job.id
        assert (work_dir / "master.ai").exists()
        assert list(work_dir.rglob("*.jsx")) == []


class TestScheduler:
    @pytest.mark.asyncio
    async def test_tick_skips_while_busy(self) -> None:
        client = MagicMock()
        client.claim_jobs = AsyncMock(return_value=[])
        scheduler = BridgeScheduler(client, MagicMock(), poll_interval=1, batch_size=5)
        scheduler.state = SchedulerState.PROCESSING

        assert await scheduler.tick() == 0
        client.claim_jobs.assert_not_called()

    @pytest.mark.asyncio
    async def test_overlapping_ticks_run_once(self) -> None:
        release = asyncio.Event()
        client = MagicMock()
        client.claim_jobs = AsyncMock(return_value=[MagicMock()])
        agent = MagicMock()

        async def _slow_batch(tickets: list[object]) -> list[bool]:
            await release.wait()
            return [True]

        agent.process_batch = _slow_batch
        scheduler = BridgeScheduler(client, agent, poll_interval=1, batch_size=5)

        first = asyncio.create_task(scheduler.tick())
        await asyncio.sleep(0)
        assert scheduler.state is SchedulerState.PROCESSING
        assert await scheduler.tick() == 0
        release.set()
        assert await first == 1
        assert scheduler.state is SchedulerState.IDLE
        client.claim_jobs.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_poll_failure_returns_to_idle(self) -> None:
        client = MagicMock()
        client.claim_jobs = AsyncMock(side_effect=httpx.ConnectError("refused"))
        scheduler = BridgeScheduler(client, MagicMock(), poll_interval=1, batch_size=5)

        assert await scheduler.tick() == 0
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_run_polls_until_stopped(self) -> None:
        client = MagicMock()
        client.claim_jobs = AsyncMock(return_value=[])
        scheduler = BridgeScheduler(client, MagicMock(), poll_interval=0.01, batch_size=2)

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)
        assert client.claim_jobs.await_count >= 2


class TestExports:
    def test_missing_formats_are_reported(self, tmp_path: Path) -> None:
        base = tmp_path / "Variant_1-1"
        base.with_name("Variant_1-1.ai").write_bytes(b"ai")
        base.with_name("Variant_1-1.svg").write_bytes(b"")

        results = {r.fmt: r for r in collect_exports(base, tuple(ExportFormat))}
        assert results[ExportFormat.AI].ok
        assert results[ExportFormat.AI].path == tmp_path / "Variant_1-1.ai"
        assert not results[ExportFormat.SVG].ok
        assert not results[ExportFormat.PDF].ok
        assert results[ExportFormat.PNG].error == "png export was not produced"


class TestOutputName:
    def test_sanitizes_variant_name(self) -> None:
        name = output_name("Variant 1 / Home")
        assert re.fullmatch(r"Variant_1_Home-\d+", name)
