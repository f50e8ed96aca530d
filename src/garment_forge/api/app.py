from __future__ import annotations

from fastapi import FastAPI
from fastapi_jsonapi import ApplicationBuilder
from fastapi_jsonapi.views import Operation

from garment_forge.api.lifespan import lifespan
from garment_forge.api.middleware import CursorPaginationMiddleware
from garment_forge.api.models import VariantModel
from garment_forge.api.routes.artifacts import router as artifacts_router
from garment_forge.api.routes.bridge import router as bridge_router
from garment_forge.api.routes.health import router as health_router
from garment_forge.api.routes.root import router as root_router
from garment_forge.api.routes.templates import router as templates_router
from garment_forge.api.routes.variants import router as variants_router
from garment_forge.api.schemas import VariantSchema
from garment_forge.api.views import VariantView


def create_app() -> FastAPI:
    app = FastAPI(
        title="Garment Forge API",
        description="Customize garment templates, preview variants and queue production jobs.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # JSON:API resources via FastAPI-JSONAPI
    builder = ApplicationBuilder(app)
    builder.add_resource(
        path="/variants",
        tags=["variants"],
        view=VariantView,
        model=VariantModel,
        schema=VariantSchema,
        resource_type="variants",
        ending_slash=False,
        operations=[Operation.GET_LIST, Operation.GET],
    )
    builder.initialize()

    # Cursor-based pagination link injection
    app.add_middleware(CursorPaginationMiddleware)

    # Custom (non-JSON:API) endpoints
    app.include_router(root_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)
    app.include_router(variants_router)
    app.include_router(templates_router)
    app.include_router(bridge_router)
    app.include_router(artifacts_router)

    return app
