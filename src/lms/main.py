"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from lms.achievements.router import router as achievements_router
from lms.admin.router import router as admin_router
from lms.auth.router import router as auth_router
from lms.catalog.router import router as catalog_router
from lms.config import get_settings
from lms.database import close_db, get_session_factory, init_db
from lms.health.router import router as health_router
from lms.middleware import setup_middleware
from lms.notifications.router import router as notifications_router
from lms.progress.router import router as progress_router
from lms.redis_client import close_redis, init_redis
from lms.subscriptions.router import router as subscriptions_router
from lms.subscriptions.seed import seed_tiers
from lms.tracking.router import router as sessions_router
from lms.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Subscription tiers (idempotent)
    if settings.seed_reference_data:
        try:
            async with get_session_factory()() as db:
                await seed_tiers(db)
        except Exception:
            logger.warning("tier_seeding_failed", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Learning Platform API",
        description="Backend API for modules, progress tracking, achievements and subscriptions",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(catalog_router)
    app.include_router(progress_router)
    app.include_router(sessions_router)
    app.include_router(achievements_router)
    app.include_router(notifications_router)
    app.include_router(subscriptions_router)
    app.include_router(admin_router)

    return app


app = create_app()
