"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from authz.dependencies import (
    get_consistency_coordinator,
    get_namespace_registry,
    get_schema_service,
)
from authz.ports.exceptions import AuthorizationError
from authz.presentation import routes as authz_routes
from infrastructure.logging import configure_logging
from infrastructure.observability import DefaultStartupProbe
from infrastructure.settings import get_settings
from infrastructure.version import __version__


@asynccontextmanager
async def tessera_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging configuration
    - Loading the startup schema document, when one is configured
    """
    settings = get_settings()
    configure_logging(debug=settings.debug, service=settings.app_name)
    probe = DefaultStartupProbe()
    probe.application_starting(app_name=settings.app_name, version=__version__)

    if settings.schema_path is None:
        probe.schema_bootstrap_skipped()
    else:
        service = get_schema_service(
            registry=get_namespace_registry(),
            coordinator=get_consistency_coordinator(),
        )
        try:
            revision = service.load_schema_file(settings.schema_path)
        except (OSError, ValueError, AuthorizationError) as e:
            probe.schema_bootstrap_failed(path=settings.schema_path, error=e)
            raise
        probe.schema_bootstrapped(path=settings.schema_path, revision=revision)

    yield

    probe.application_stopped()


app = FastAPI(
    title="Tessera Authorization API",
    description="Relationship-based authorization: checks, listings and schema",
    version=__version__,
    lifespan=tessera_lifespan,
)

# Include Authorization bounded context routes
app.include_router(authz_routes.router)


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "ok"}
