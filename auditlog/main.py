from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auditlog.config.logging import setup_logging
from auditlog.config.settings import settings
from auditlog.v1.audits.routes import router as audits_router
from auditlog.v1.core.exceptions import (
    RequestContextMiddleware,
    register_exception_handlers,
)
from auditlog.v1.healthz import router as health_router
from auditlog.v1.worker.jobs import init_job_registry


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    setup_logging()

    # Jobs must be known before any audit is logged: logging consults the
    # registry to decide whether an event needs processing at all
    init_job_registry()

    app = FastAPI(
        title=settings.app_name,
        description="Audit log with background job dispatch",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    app.add_middleware(RequestContextMiddleware)

    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(audits_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "auditlog.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
