from fastapi import FastAPI, HTTPException

from pkp.config.logging import setup_logging
from pkp.config.settings import settings
from pkp.core.exceptions import (
    PKPException,
    general_exception_handler,
    http_exception_handler,
    pkp_exception_handler,
)
from pkp.core.registries import blob_store_registry, job_registry, provider_registry
from pkp.healthz import router as health_router
from pkp.jobs.registry_init import register_job_handlers
from pkp.jobs.routes import router as jobs_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Run trigger and observability for the note enrichment queue",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.add_exception_handler(PKPException, pkp_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    if not job_registry.list():
        register_job_handlers(settings)

    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        provider_registry.freeze()
        blob_store_registry.freeze()
        job_registry.freeze()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pkp.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
