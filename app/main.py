"""montage-core — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from app.admin import setup_admin
from app.api import montage, web
from app.infra.config import settings
from app.infra.db import init_db

logger = logging.getLogger("montage-core")

try:
    __version__ = version("montage-core")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
    await init_db()
    logger.info("montage-core %s ready (roll provider: %s)", __version__, settings.roll_provider)
    yield


app = FastAPI(
    title="montage-core",
    description="Montage Test engine — multi-round group skill challenges",
    version=__version__,
    lifespan=lifespan,
)


def custom_openapi() -> dict:  # type: ignore[no-untyped-def]
    """Add the bearer security scheme to the OpenAPI schema."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="montage-core",
        version=__version__,
        description="Montage Test engine — multi-round group skill challenges",
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    components.setdefault("securitySchemes", {}).update({
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT access token from scripts/issue_token.py",
        },
    })

    for path, path_item in openapi_schema.get("paths", {}).items():
        if path.startswith("/api/montage"):
            for method, operation in path_item.items():
                if isinstance(operation, dict) and "security" not in operation:
                    operation["security"] = [{"bearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.include_router(montage.router)
app.include_router(web.router)

if settings.admin_enabled:
    setup_admin(app)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "engine": "montage-core", "version": __version__}
