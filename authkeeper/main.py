import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from authkeeper.config.logging_config import configure_logging
from authkeeper.config.settings import settings
from authkeeper.database.client import close_db, create_tables, init_db
from authkeeper.features.auth.cleanup import run_periodic_cleanup
from authkeeper.features.auth.router import router as auth_router
from authkeeper.features.user.router import router as user_router
from authkeeper.shared.errors.handlers import register_exception_handlers
from authkeeper.shared.rate_limit import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    configure_logging(settings)
    await init_db()
    if settings.database_create_tables:
        await create_tables()

    cleanup_task = asyncio.create_task(run_periodic_cleanup(settings.cleanup_interval_seconds))
    logger.info(f"{settings.app_name} started ({settings.environment})")

    yield

    # Shutdown
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url=None,
)

# Rate limiting: per-route limits via @limiter.limit, default limit for the rest
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["Retry-After"],
)

register_exception_handlers(app)

# Router Registration
routers: list[APIRouter] = [
    auth_router,
    user_router,
]

for router in routers:
    app.include_router(router, prefix=settings.api_prefix)


@app.get("/health")
@limiter.exempt
async def health():
    return {"success": True, "status": "healthy", "version": settings.app_version}
