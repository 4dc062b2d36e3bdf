from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from bonuswheel_api.core.settings import settings
from bonuswheel_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.wheel import PrizeCatalog


APP_VERSION = "0.1.0"
SERVICE_NAME = "bonuswheel-api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.seed_prize_catalog:
        async with async_session() as session:
            created = await PrizeCatalog(session).seed_default_catalog()
        logger.info("Prize catalog seeding enabled", created=created)
    else:
        logger.info(
            "Prize catalog seeding disabled",
            reason="seed_prize_catalog is false",
        )

    yield


def create_app() -> FastAPI:
    """Application factory for the bonus ledger service."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Bonus Wheel API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name=SERVICE_NAME,
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
