from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from garment_forge.models import ExportFormat


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _formats(raw: str | None) -> tuple[ExportFormat, ...]:
    if not raw:
        return tuple(ExportFormat)
    return tuple(ExportFormat(part.strip().lower()) for part in raw.split(",") if part.strip())


def _default_tool_path() -> str:
    if sys.platform == "win32":
        return r"C:\Program Files\Adobe\Adobe Illustrator 2024\Support Files\Contents\Windows\Illustrator.exe"
    return "/Applications/Adobe Illustrator 2024/Adobe Illustrator.app"


@dataclass(frozen=True)
class BridgeSettings:
    """Bridge agent configuration, read from the environment by ``from_env``."""

    web_app_url: str = "http://localhost:8000"
    api_token: str | None = None
    poll_interval: float = 5.0
    batch_size: int = 5
    tool_path: str = field(default_factory=_default_tool_path)
    tool_app: str = "Adobe Illustrator"
    script_timeout: float = 60.0
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "garment-forge-bridge")
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    export_formats: tuple[ExportFormat, ...] = tuple(ExportFormat)
    delete_temp_files: bool = True
    keep_output_files: bool = False

    @classmethod
    def from_env(cls) -> BridgeSettings:
        defaults = cls()
        return cls(
            web_app_url=os.getenv("WEB_APP_URL", defaults.web_app_url).rstrip("/"),
            api_token=os.getenv("BRIDGE_API_TOKEN") or None,
            # POLL_INTERVAL is given in milliseconds
            poll_interval=int(os.getenv("POLL_INTERVAL", "5000")) / 1000,
            batch_size=int(os.getenv("JOB_BATCH_SIZE", str(defaults.batch_size))),
            tool_path=os.getenv("DESIGN_TOOL_PATH", defaults.tool_path),
            tool_app=os.getenv("DESIGN_TOOL_APP", defaults.tool_app),
            script_timeout=float(os.getenv("SCRIPT_TIMEOUT", str(defaults.script_timeout))),
            temp_dir=Path(os.getenv("TEMP_DIR", str(defaults.temp_dir))),
            output_dir=Path(os.getenv("OUTPUT_DIR", str(defaults.output_dir))),
            export_formats=_formats(os.getenv("EXPORT_FORMATS")),
            delete_temp_files=_flag("DELETE_TEMP_FILES", defaults.delete_temp_files),
            keep_output_files=_flag("KEEP_OUTPUT_FILES", defaults.keep_output_files),
        )
