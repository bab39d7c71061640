import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from spoils.config.logging import get_logger, setup_logging
from spoils.config.settings import Settings, get_settings
from spoils.infra.database import get_database
from spoils.v1.core.exceptions import (
    RequestContextMiddleware,
    SpoilsException,
    general_exception_handler,
    http_exception_handler,
    spoils_exception_handler,
)
from spoils.v1.healthz import router as health_router
from spoils.v1.infra.jobs.registry_init import get_job_registry
from spoils.v1.infra.jobs.routes import router as jobs_router
from spoils.v1.infra.jobs.worker import JobWorker
from spoils.v1.ingredients.routes import router as ingredients_router
from spoils.v1.products.routes import router as products_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Optionally run a job worker alongside the API."""
    settings: Settings = app.state.settings
    if not settings.job_worker_in_app:
        yield
        return

    worker = JobWorker(settings, get_database(settings), get_job_registry(settings))
    task = asyncio.create_task(worker.start())
    logger.info("In-process job worker started", worker_id=worker.worker_id)
    try:
        yield
    finally:
        await worker.stop()
        await asyncio.gather(task, return_exceptions=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    # Initialize structured logging
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Idempotent background jobs and ingredient resolution",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(SpoilsException, spoils_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(ingredients_router, prefix="/v1")
    app.include_router(products_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    default_settings = get_settings()
    uvicorn.run(
        "spoils.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
