from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from garment_forge.models import ExportFormat

logger = logging.getLogger(__name__)


class NoExportsError(Exception):
    """The script finished but no export could be uploaded."""


@dataclass(frozen=True)
class ExportResult:
    fmt: ExportFormat
    path: Path | None = None
    ref: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def export_path(output_base: Path, fmt: ExportFormat) -> Path:
    return output_base.with_name(f"{output_base.name}.{fmt.value}")


def collect_exports(output_base: Path, formats: Iterable[ExportFormat]) -> list[ExportResult]:
    """Check which of the expected ``<output_base>.<fmt>`` files the script produced."""
    results: list[ExportResult] = []
    for fmt in formats:
        path = export_path(output_base, fmt)
        if path.is_file() and path.stat().st_size > 0:
            results.append(ExportResult(fmt=fmt, path=path))
        else:
            logger.warning("%s export missing at %s", fmt.value, path)
            results.append(ExportResult(fmt=fmt, error=f"{fmt.value} export was not produced"))
    return results
