"""JSON:API view classes for the variants resource."""

from __future__ import annotations

from typing import Any, ClassVar

from fastapi import Depends
from fastapi_jsonapi.views import Operation, OperationConfig, ViewBase
from pydantic import BaseModel, ConfigDict

from garment_forge.api.data_layer import VariantDataLayer
from garment_forge.api.dependencies import get_database, get_storage


class StoreDependency(BaseModel):
    """Pydantic model whose fields become FastAPI Depends() parameters."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    db: Any = Depends(get_database)
    storage: Any = Depends(get_storage)


async def prepare_dl_kwargs(view: ViewBase, deps: StoreDependency) -> dict[str, Any]:
    """Extract resolved dependencies and return kwargs for the data layer constructor."""
    return {"db": deps.db, "storage": deps.storage}


class VariantView(ViewBase):
    data_layer_cls = VariantDataLayer  # type: ignore[assignment]
    operation_dependencies: ClassVar[dict[Operation, OperationConfig]] = {
        Operation.ALL: OperationConfig(
            dependencies=StoreDependency,
            prepare_data_layer_kwargs=prepare_dl_kwargs,
        ),
    }
