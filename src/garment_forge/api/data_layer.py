"""Custom BaseDataLayer bridging JSON:API reads to the DesignDatabase protocol."""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi_jsonapi.data_layers.base import BaseDataLayer
from fastapi_jsonapi.data_typing import TypeModel, TypeSchema
from fastapi_jsonapi.exceptions import BadRequest, ObjectNotFound
from fastapi_jsonapi.querystring import QueryStringManager
from fastapi_jsonapi.views import RelationshipRequestInfo

from garment_forge.api.models import VariantModel
from garment_forge.api.pagination import InvalidCursorError, decode_cursor, encode_cursor, parse_page_params
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import VariantStatus


class VariantDataLayer(BaseDataLayer):
    """Data layer for the ``variants`` JSON:API resource."""

    def __init__(
        self,
        request: Request,
        model: type[TypeModel],
        schema: type[TypeSchema],
        resource_type: str,
        db: DesignDatabase | None = None,
        storage: ArtifactStorage | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(request=request, model=model, schema=schema, resource_type=resource_type, **kwargs)
        assert db is not None, "DesignDatabase dependency must be provided"
        assert storage is not None, "ArtifactStorage dependency must be provided"
        self.db = db
        self.storage = storage

    async def get_collection(
        self,
        qs: QueryStringManager,
        view_kwargs: dict[str, Any] | None = None,
        relationship_request_info: RelationshipRequestInfo | None = None,
    ) -> tuple[int, list[Any]]:
        await self.db.ensure_ready()

        after_cursor, before_cursor, size = parse_page_params(self.request)
        try:
            after = decode_cursor(after_cursor) if after_cursor else None
            before = decode_cursor(before_cursor) if before_cursor and not after_cursor else None
        except InvalidCursorError as exc:
            raise BadRequest(detail=str(exc)) from exc

        # Extract filter[item_id] and filter[status] from querystring
        item_id: str | None = None
        status: VariantStatus | None = None
        for f in qs.filters:
            if f.get("name") == "item_id" and f.get("op") == "eq":
                item_id = str(f["val"])
            elif f.get("name") == "status" and f.get("op") == "eq":
                try:
                    status = VariantStatus(str(f["val"]))
                except ValueError as exc:
                    raise BadRequest(detail=f"Unknown variant status {f['val']!r}") from exc

        # Fetch one extra row to determine if there are more results
        rows = await self.db.list_variants(item_id=item_id, status=status, limit=size + 1, after=after, before=before)

        if before is not None:
            page = rows[-size:]
            has_next = len(page) > 0
            has_prev = len(rows) > size
        else:
            page = rows[:size]
            has_next = len(rows) > size
            has_prev = after is not None and len(page) > 0

        items = [VariantModel.from_variant(v, self.storage) for v in page]

        # Store pagination state on request for middleware to pick up
        self.request.state.cursor_pagination = {
            "has_next": has_next,
            "has_prev": has_prev,
            "size": size,
            "resource_path": "/variants",
        }
        if page:
            self.request.state.cursor_pagination["first_cursor"] = encode_cursor(page[0].created_at, page[0].id)
            self.request.state.cursor_pagination["last_cursor"] = encode_cursor(page[-1].created_at, page[-1].id)

        # Return 0 as count to avoid FastAPI-JSONAPI generating offset-based links
        return 0, items

    async def get_object(
        self,
        view_kwargs: dict[str, Any],
        qs: QueryStringManager | None = None,
        relationship_request_info: RelationshipRequestInfo | None = None,
    ) -> Any:
        await self.db.ensure_ready()
        variant_id = view_kwargs.get("id", "")
        variant = await self.db.get_variant(variant_id)
        if variant is None:
            raise ObjectNotFound(detail=f"Variant {variant_id} not found")
        return VariantModel.from_variant(variant, self.storage)
