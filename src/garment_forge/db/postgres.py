import json
import logging
import uuid
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from garment_forge.models import (
    AssetRecord,
    DesignVariant,
    ItemRecord,
    JobStatus,
    ProductionJob,
    TemplateRecord,
    VariantConfiguration,
    VariantDraft,
    VariantStatus,
    VariantUpdate,
)

logger = logging.getLogger(__name__)

_VARIANT_COLUMNS = (
    "id, item_id, name, configuration, preview_artifact_ref, final_artifact_ref, "
    "status, error_message, created_at, updated_at"
)
_JOB_COLUMNS = "id, variant_id, priority, status, error_message, enqueued_at, claimed_at, started_at, completed_at"
_ACTIVE = ("pending", "processing")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(value: str) -> str | None:
    """Return the canonical form of ``value`` or ``None`` if it is not a UUID."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError):
        return None


def _json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered on the connection.
    return json.loads(value) if isinstance(value, str) else value


def _variant_from_row(row: Row[Any]) -> DesignVariant:
    m = row._mapping
    return DesignVariant(
        id=str(m["id"]),
        item_id=m["item_id"],
        name=m["name"],
        configuration=VariantConfiguration.model_validate(_json(m["configuration"])),
        preview_artifact_ref=m["preview_artifact_ref"],
        final_artifact_ref=m["final_artifact_ref"],
        status=VariantStatus(m["status"]),
        error_message=m["error_message"],
        created_at=m["created_at"],
        updated_at=m["updated_at"],
    )


def _job_from_row(row: Row[Any], artifacts: dict[str, str] | None = None) -> ProductionJob:
    m = row._mapping
    return ProductionJob(
        id=str(m["id"]),
        variant_id=str(m["variant_id"]),
        priority=m["priority"],
        status=JobStatus(m["status"]),
        error_message=m["error_message"],
        enqueued_at=m["enqueued_at"],
        claimed_at=m["claimed_at"],
        started_at=m["started_at"],
        completed_at=m["completed_at"],
        artifacts=artifacts or {},
    )


async def _load_artifacts(conn: AsyncConnection, job_ids: list[str]) -> dict[str, dict[str, str]]:
    if not job_ids:
        return {}
    result = await conn.execute(
        text("SELECT job_id, format, ref FROM public.job_artifacts WHERE job_id::text = ANY(:ids)"),
        {"ids": job_ids},
    )
    artifacts: dict[str, dict[str, str]] = {}
    for row in result.fetchall():
        artifacts.setdefault(str(row[0]), {})[str(row[1])] = str(row[2])
    return artifacts


async def _jobs_with_artifacts(conn: AsyncConnection, rows: Sequence[Row[Any]]) -> list[ProductionJob]:
    artifacts = await _load_artifacts(conn, [str(r._mapping["id"]) for r in rows])
    return [_job_from_row(r, artifacts.get(str(r._mapping["id"]))) for r in rows]


class PostgresDesignDatabase:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def ensure_ready(self) -> None:
        """Tables are owned by the Alembic migrations; nothing to create at runtime."""

    # --- catalog ---

    async def get_item(self, item_id: str) -> ItemRecord | None:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text("SELECT id, name, template_id FROM public.items WHERE id = :id"),
                {"id": item_id},
            )
            row = result.fetchone()
            if row is None:
                return None
            return ItemRecord(id=row[0], name=row[1], template_id=row[2])

    async def get_template(self, template_id: str) -> TemplateRecord | None:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(
                    "SELECT id, name, vector_source_ref, master_document_ref, layer_data "
                    "FROM public.templates WHERE id = :id"
                ),
                {"id": template_id},
            )
            row = result.fetchone()
            if row is None:
                return None
            return TemplateRecord(
                id=row[0],
                name=row[1],
                vector_source_ref=row[2],
                master_document_ref=row[3],
                layer_data=_json(row[4]),
            )

    async def save_template_layers(self, template_id: str, layer_data: list[dict[str, Any]]) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("UPDATE public.templates SET layer_data = CAST(:layer_data AS JSONB) WHERE id = :id"),
                {"id": template_id, "layer_data": json.dumps(layer_data)},
            )

    async def get_assets(self, asset_ids: Collection[str]) -> dict[str, AssetRecord]:
        if not asset_ids:
            return {}
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text("SELECT id, kind, name, value FROM public.assets WHERE id = ANY(:ids)"),
                {"ids": list(asset_ids)},
            )
            return {
                row[0]: AssetRecord(id=row[0], kind=row[1], name=row[2], value=row[3]) for row in result.fetchall()
            }

    async def upsert_item(self, item: ItemRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO public.items (id, name, template_id)
                    VALUES (:id, :name, :template_id)
                    ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name, template_id = EXCLUDED.template_id
                    """
                ),
                item.model_dump(),
            )

    async def upsert_template(self, template: TemplateRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO public.templates (id, name, vector_source_ref, master_document_ref, layer_data)
                    VALUES (:id, :name, :vector_source_ref, :master_document_ref, NULL)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        vector_source_ref = EXCLUDED.vector_source_ref,
                        master_document_ref = EXCLUDED.master_document_ref,
                        layer_data = NULL
                    """
                ),
                template.model_dump(exclude={"layer_data"}),
            )

    async def upsert_asset(self, asset: AssetRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO public.assets (id, kind, name, value)
                    VALUES (:id, :kind, :name, :value)
                    ON CONFLICT (id) DO UPDATE SET kind = EXCLUDED.kind, name = EXCLUDED.name, value = EXCLUDED.value
                    """
                ),
                asset.model_dump(mode="json"),
            )

    # --- variants ---

    async def create_variants(self, item_id: str, drafts: Sequence[VariantDraft], limit: int) -> list[DesignVariant]:
        """Insert up to ``limit`` variants for the item in total.

        The item row is locked for the duration of the transaction so that the
        count and the inserts cannot interleave with a concurrent call.
        """
        created: list[DesignVariant] = []
        async with self._engine.begin() as conn:
            locked = await conn.execute(
                text("SELECT id FROM public.items WHERE id = :item_id FOR UPDATE"),
                {"item_id": item_id},
            )
            if locked.fetchone() is None:
                return []
            count_result = await conn.execute(
                text("SELECT count(*) FROM public.design_variants WHERE item_id = :item_id"),
                {"item_id": item_id},
            )
            existing = int(count_result.scalar_one())
            room = max(0, limit - existing)
            base = _now()
            for offset, draft in enumerate(drafts[:room]):
                ts = base + timedelta(microseconds=offset)
                result = await conn.execute(
                    text(
                        f"""
                        INSERT INTO public.design_variants
                            (id, item_id, name, configuration, preview_artifact_ref, status, created_at, updated_at)
                        VALUES
                            (:id, :item_id, :name, CAST(:configuration AS JSONB), :preview, 'preview', :ts, :ts)
                        RETURNING {_VARIANT_COLUMNS}
                        """
                    ),
                    {
                        "id": str(uuid.uuid4()),
                        "item_id": item_id,
                        "name": f"Variant {existing + offset + 1}",
                        "configuration": draft.configuration.model_dump_json(by_alias=True),
                        "preview": draft.preview_artifact_ref,
                        "ts": ts,
                    },
                )
                created.append(_variant_from_row(result.one()))
        logger.info("created %d variant(s) for item %s (%d existing)", len(created), item_id, existing)
        return created

    async def get_variant(self, variant_id: str) -> DesignVariant | None:
        vid = _as_uuid(variant_id)
        if vid is None:
            return None
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(f"SELECT {_VARIANT_COLUMNS} FROM public.design_variants WHERE id = :id"),
                {"id": vid},
            )
            row = result.fetchone()
            return _variant_from_row(row) if row is not None else None

    async def list_variants(
        self,
        item_id: str | None = None,
        status: VariantStatus | None = None,
        limit: int = 50,
        after: tuple[datetime, str] | None = None,
        before: tuple[datetime, str] | None = None,
    ) -> list[DesignVariant]:
        """Return variants ordered by ``(created_at, id)`` with cursor-based pagination."""
        clauses: list[str] = []
        params: dict[str, Any] = {"lim": limit}
        if item_id is not None:
            clauses.append("item_id = :item_id")
            params["item_id"] = item_id
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status.value

        order = "created_at, id"
        if after is not None:
            clauses.append("(created_at, id) > (CAST(:cursor_ts AS TIMESTAMPTZ), CAST(:cursor_id AS UUID))")
            params["cursor_ts"], params["cursor_id"] = after
        elif before is not None:
            clauses.append("(created_at, id) < (CAST(:cursor_ts AS TIMESTAMPTZ), CAST(:cursor_id AS UUID))")
            params["cursor_ts"], params["cursor_id"] = before
            order = "created_at DESC, id DESC"

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT {_VARIANT_COLUMNS} FROM public.design_variants {where} ORDER BY {order} LIMIT :lim"
        if before is not None:
            sql = f"SELECT * FROM ({sql}) sub ORDER BY created_at, id"

        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), params)
            return [_variant_from_row(row) for row in result.fetchall()]

    async def set_variant_status(
        self,
        variant_id: str,
        status: VariantStatus,
        only_from: Collection[VariantStatus],
    ) -> DesignVariant | None:
        vid = _as_uuid(variant_id)
        if vid is None:
            return None
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    "UPDATE public.design_variants SET status = :status, updated_at = :now "
                    "WHERE id = :id AND status = ANY(:only_from)"
                ),
                {"id": vid, "status": status.value, "now": _now(), "only_from": [s.value for s in only_from]},
            )
            result = await conn.execute(
                text(f"SELECT {_VARIANT_COLUMNS} FROM public.design_variants WHERE id = :id"),
                {"id": vid},
            )
            row = result.fetchone()
            return _variant_from_row(row) if row is not None else None

    async def delete_variant(self, variant_id: str) -> DesignVariant | None:
        vid = _as_uuid(variant_id)
        if vid is None:
            return None
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(f"DELETE FROM public.design_variants WHERE id = :id RETURNING {_VARIANT_COLUMNS}"),
                {"id": vid},
            )
            row = result.fetchone()
            return _variant_from_row(row) if row is not None else None

    async def delete_variants_for_item(self, item_id: str) -> list[DesignVariant]:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(f"DELETE FROM public.design_variants WHERE item_id = :item_id RETURNING {_VARIANT_COLUMNS}"),
                {"item_id": item_id},
            )
            rows = [_variant_from_row(row) for row in result.fetchall()]
        return sorted(rows, key=lambda v: (v.created_at, v.id))

    # --- production jobs ---

    async def enqueue_jobs(self, variant_ids: Sequence[str], priority: int) -> list[ProductionJob]:
        """Create one pending job per eligible variant.

        The partial unique index ``uq_active_job_per_variant`` rejects a second
        active job for the same variant, even across concurrent callers.
        """
        created: list[ProductionJob] = []
        base = _now()
        async with self._engine.begin() as conn:
            for variant_id in variant_ids:
                vid = _as_uuid(variant_id)
                if vid is None:
                    continue
                result = await conn.execute(
                    text(
                        f"""
                        INSERT INTO public.production_jobs (id, variant_id, priority, status, enqueued_at)
                        SELECT CAST(:id AS UUID), v.id, CAST(:priority AS INTEGER), 'pending', CAST(:ts AS TIMESTAMPTZ)
                        FROM public.design_variants v
                        WHERE v.id = :variant_id AND v.status <> 'generating'
                        ON CONFLICT (variant_id) WHERE status IN ('pending', 'processing') DO NOTHING
                        RETURNING {_JOB_COLUMNS}
                        """
                    ),
                    {
                        "id": str(uuid.uuid4()),
                        "variant_id": vid,
                        "priority": priority,
                        "ts": base + timedelta(microseconds=len(created)),
                    },
                )
                row = result.fetchone()
                if row is None:
                    continue
                await conn.execute(
                    text("UPDATE public.design_variants SET status = 'selected', updated_at = :now WHERE id = :id"),
                    {"id": vid, "now": base},
                )
                created.append(_job_from_row(row))
        return created

    async def get_job(self, job_id: str) -> ProductionJob | None:
        jid = _as_uuid(job_id)
        if jid is None:
            return None
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(f"SELECT {_JOB_COLUMNS} FROM public.production_jobs WHERE id = :id"),
                {"id": jid},
            )
            row = result.fetchone()
            if row is None:
                return None
            return (await _jobs_with_artifacts(conn, [row]))[0]

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[ProductionJob]:
        where = "WHERE status = :status" if status is not None else ""
        params: dict[str, Any] = {"lim": limit}
        if status is not None:
            params["status"] = status.value
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_JOB_COLUMNS} FROM public.production_jobs {where} "
                    "ORDER BY priority DESC, enqueued_at ASC, id LIMIT :lim"
                ),
                params,
            )
            return await _jobs_with_artifacts(conn, result.fetchall())

    async def claim_jobs(self, limit: int) -> list[ProductionJob]:
        """Atomically move up to ``limit`` pending jobs to processing and return them."""
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(
                    f"""
                    UPDATE public.production_jobs SET status = 'processing', claimed_at = :now
                    WHERE id IN (
                        SELECT id FROM public.production_jobs
                        WHERE status = 'pending'
                        ORDER BY priority DESC, enqueued_at ASC, id
                        LIMIT :lim
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING {_JOB_COLUMNS}
                    """
                ),
                {"now": _now(), "lim": limit},
            )
            jobs = await _jobs_with_artifacts(conn, result.fetchall())
        jobs.sort(key=lambda j: (-j.priority, j.enqueued_at, j.id))
        if jobs:
            logger.info("claimed %d job(s)", len(jobs))
        return jobs

    async def transition_job(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None,
        variant_update: VariantUpdate,
    ) -> ProductionJob | None:
        jid = _as_uuid(job_id)
        if jid is None:
            return None
        stamp = "started_at" if status == JobStatus.PROCESSING else "completed_at"
        now = _now()
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(
                    f"""
                    UPDATE public.production_jobs
                    SET status = :status, error_message = :error_message, {stamp} = :now
                    WHERE id = :id AND status = ANY(:active)
                    RETURNING {_JOB_COLUMNS}
                    """
                ),
                {
                    "id": jid,
                    "status": status.value,
                    "error_message": error_message,
                    "now": now,
                    "active": list(_ACTIVE),
                },
            )
            row = result.fetchone()
            if row is None:
                return None
            await conn.execute(
                text(
                    """
                    UPDATE public.design_variants
                    SET status = :status,
                        error_message = :error_message,
                        final_artifact_ref = COALESCE(:final_ref, final_artifact_ref),
                        updated_at = :now
                    WHERE id = :variant_id
                    """
                ),
                {
                    "variant_id": str(row._mapping["variant_id"]),
                    "status": variant_update.status.value,
                    "error_message": variant_update.error_message,
                    "final_ref": variant_update.final_artifact_ref,
                    "now": now,
                },
            )
            return (await _jobs_with_artifacts(conn, [row]))[0]

    async def add_job_artifact(self, job_id: str, fmt: str, ref: str) -> ProductionJob | None:
        jid = _as_uuid(job_id)
        if jid is None:
            return None
        async with self._engine.begin() as conn:
            exists = await conn.execute(
                text("SELECT 1 FROM public.production_jobs WHERE id = :id"),
                {"id": jid},
            )
            if exists.fetchone() is None:
                return None
            await conn.execute(
                text(
                    """
                    INSERT INTO public.job_artifacts (job_id, format, ref)
                    VALUES (:job_id, :format, :ref)
                    ON CONFLICT (job_id, format) DO UPDATE SET ref = EXCLUDED.ref
                    """
                ),
                {"job_id": jid, "format": fmt, "ref": ref},
            )
        return await self.get_job(jid)

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.warning("database ping failed", exc_info=True)
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()
