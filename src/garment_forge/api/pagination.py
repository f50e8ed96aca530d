"""Cursor-based pagination utilities for the JSON:API endpoints.

Implements the JSON:API Cursor Pagination Profile. A cursor is an opaque
base64 token holding the row's creation timestamp and its id, matching the
``(created_at, id)`` ordering of variant listings.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime

from starlette.requests import Request

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class InvalidCursorError(ValueError):
    """Raised when a cursor string cannot be decoded."""


def encode_cursor(created_at: datetime, id_value: str) -> str:
    payload = json.dumps({"t": created_at.isoformat(), "i": id_value}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode a cursor back into ``(created_at, id)``.

    Raises ``InvalidCursorError`` if the cursor is malformed.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(payload["t"]), str(payload["i"])
    except (ValueError, KeyError, TypeError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}") from exc


def parse_page_params(request: Request) -> tuple[str | None, str | None, int]:
    """Extract ``page[after]``, ``page[before]`` and ``page[size]`` from the query string."""
    after = request.query_params.get("page[after]")
    before = request.query_params.get("page[before]")
    size_raw = request.query_params.get("page[size]", str(DEFAULT_PAGE_SIZE))
    try:
        size = max(1, min(int(size_raw), MAX_PAGE_SIZE))
    except (ValueError, TypeError):
        size = DEFAULT_PAGE_SIZE
    return after, before, size
