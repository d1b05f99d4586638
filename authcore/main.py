"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging setup, table creation, engine disposal
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn authcore.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authcore import models  # noqa: F401  (registers every table on Base.metadata)
from authcore.config import settings
from authcore.database import Base, engine
from authcore.exceptions import register_exception_handlers
from authcore.logging import configure_logging, get_logger
from authcore.routers import auth, mfa, rbac, sessions

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures structlog and creates all database tables if they don't
      exist. Production deployments should manage the schema with migrations.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("startup", app=settings.APP_NAME, version=settings.APP_VERSION)
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Authentication and identity service: credentials, tokens, sessions, MFA and RBAC",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

# /auth/sessions and /auth/mfa are mounted before the generic /auth router
app.include_router(sessions.router, prefix="/auth/sessions", tags=["Sessions"])
app.include_router(mfa.router, prefix="/auth/mfa", tags=["MFA"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(rbac.router, prefix="/rbac", tags=["RBAC"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
