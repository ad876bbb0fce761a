import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    close_redis_connections,
    configure_logging,
    dispose_engines,
    ensure_schema,
    get_session_factory,
    resolve_database_url,
    resolve_redis,
)

from .api.coordinator import router as coordinator_router
from .api.health import router as health_router
from .api.profiles import router as profiles_router
from .api.results import router as results_router
from .api.summaries import router as summaries_router
from .models import Base
from .overview_cache import OverviewCache

SERVICE_NAME = "Academic Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./academic_service.db"

logger = logging.getLogger(__name__)


async def _persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Unhandled persistence error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Academic Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    redis_client = resolve_redis(resolved_settings)
    overview_cache = OverviewCache(redis_client, ttl_seconds=resolved_settings.overview_cache_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.session_factory = session_factory
        app.state.overview_cache = overview_cache
        try:
            await ensure_schema(database_url, Base.metadata)
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.overview_cache = None
            await dispose_engines()
            if redis_client is not None:
                await close_redis_connections()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.add_exception_handler(SQLAlchemyError, _persistence_error_handler)  # type: ignore[arg-type]
    app.include_router(health_router)
    app.include_router(profiles_router)
    app.include_router(results_router)
    app.include_router(summaries_router)
    app.include_router(coordinator_router)
    return app


app = create_app()
