"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from officemate import __version__
from officemate.api.rate_limit import build_limiter, rate_limit_exceeded_handler
from officemate.cache.redis_client import close_redis_store
from officemate.config import get_settings
from officemate.db.database import close_db, init_db
from officemate.errors import OfficeMateError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_db()
    await close_redis_store()


async def handle_domain_error(request: Request, exc: OfficeMateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="OfficeMate API",
        description="Office commute backend: verified accounts, profiles, wallet and safety",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    from officemate.api.routers import admin, auth, profile, safety, wallet
    from officemate.api.routes import health

    # Rate limiting (per user, or per address before login)
    app.state.limiter = build_limiter()
    app.state.limiter.exempt(health.health_check)
    app.state.limiter.exempt(health.detailed_health)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS middleware (added last so it also wraps 429 responses)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(OfficeMateError, handle_domain_error)

    # Register routes
    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, prefix="/api/v1", tags=["Auth"])
    app.include_router(profile.router, prefix="/api/v1", tags=["Profile"])
    app.include_router(wallet.router, prefix="/api/v1", tags=["Wallet"])
    app.include_router(safety.router, prefix="/api/v1", tags=["Safety"])
    app.include_router(admin.router, tags=["Admin"])

    return app


# Default app instance
app = create_app()
