"""Client Onboarding Portal - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from config import get_settings
from database import engine
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from models import Base
from routers import (
    admin_connections_router,
    auth_router,
    oauth_router,
    onboarding_router,
    platforms_router,
)

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables on startup, dispose the engine on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Security check: Warn if using default JWT secret in production
    if not settings.debug and settings.jwt_secret == "dev-secret-change-in-production":
        logger.warning("SECURITY WARNING: Using default JWT secret in production!")
        logger.warning("Set JWT_SECRET environment variable to a secure random value.")

    if settings.debug_assets:
        logger.warning("debug_assets enabled - synthetic test assets will be added to discovery results")

    yield

    await engine.dispose()


app = FastAPI(
    title="Client Onboarding Portal API",
    description="OAuth onboarding of client ad, analytics and commerce accounts",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(oauth_router)
app.include_router(admin_connections_router)
app.include_router(onboarding_router)
app.include_router(platforms_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "onboarding-portal"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Client Onboarding Portal API",
        "version": "0.1.0",
        "docs": "/docs",
    }
