"""Render the automation script from its template.

The template carries three placeholders: ``{{TEMPLATE_PATH}}`` and
``{{OUTPUT_BASE_PATH}}`` sit inside single-quoted string literals, and
``{{INSTRUCTIONS}}`` sits inside ``JSON.parse('...')``.
"""

from __future__ import annotations

import json
import re
import uuid
from pathlib import Path
from typing import Any

SCRIPT_TEMPLATE = Path(__file__).parent / "scripts" / "apply_variant.jsx"

_PLACEHOLDER = re.compile(r"\{\{(TEMPLATE_PATH|OUTPUT_BASE_PATH|INSTRUCTIONS)\}\}")


def escape_path(path: str) -> str:
    return path.replace("\\", "\\\\").replace("'", "\\'")


def escape_json_literal(payload: str) -> str:
    """Escape serialized JSON so it survives a single-quoted script string literal."""
    return payload.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')


def load_script_template() -> str:
    return SCRIPT_TEMPLATE.read_text(encoding="utf-8")


def render_script(
    template_path: Path | str,
    output_base: Path | str,
    instructions: dict[str, Any],
    template_text: str | None = None,
) -> str:
    values = {
        "TEMPLATE_PATH": escape_path(str(template_path)),
        "OUTPUT_BASE_PATH": escape_path(str(output_base)),
        "INSTRUCTIONS": escape_json_literal(json.dumps(instructions)),
    }
    text = template_text if template_text is not None else load_script_template()
    # Single pass, so substituted values are never rescanned for placeholders.
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], text)


def write_script(text: str, directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"variant-{uuid.uuid4().hex}.jsx"
    path.write_text(text, encoding="utf-8")
    return path
