"""FastAPI main application for the geographic rollup service."""

import time
from contextlib import asynccontextmanager

import asyncpg
from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from georollup.api.routes import dashboards, elections, hierarchy_cache
from georollup.core.config import settings
from georollup.core.database import close_db_pool, get_pool, init_db_pool
from georollup.core.errors import MergeInvariantViolation, RollupError, ScopeDeniedError
from georollup.core.logging_config import audit_logger, get_logger, setup_logging
from georollup.core.responses import error_response, error_response_dict, success_response
from georollup.services.hierarchy_cache import HierarchyCache

# Setup logging
setup_logging()
logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Relaxed enough for the /docs UI
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
            "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
            "img-src 'self' data: https:; "
            "frame-ancestors 'none'"
        )
        response.headers["Cache-Control"] = "no-store"

        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - runs on startup and shutdown."""
    logger.info("Starting geographic rollup service...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Initialize async database pool (skip in test environment)
    if settings.ENVIRONMENT != "test":
        await init_db_pool(settings)

    app.state.hierarchy_cache = HierarchyCache(ttl_seconds=settings.HIERARCHY_CACHE_TTL_SECONDS)
    logger.info(f"Hierarchy cache ready (ttl={settings.HIERARCHY_CACHE_TTL_SECONDS}s)")

    yield

    if settings.ENVIRONMENT != "test":
        await close_db_pool()
    logger.info("Shutting down geographic rollup service...")


app = FastAPI(
    title="Geographic Rollup Service",
    description="""
    Read-side aggregation for the voter mobilisation and election results
    dashboards: counts rolled up State -> LGA -> Ward -> Polling Unit,
    restricted to each coordinator's assigned location.

    ## Authentication

    Every endpoint requires a bearer JWT issued by the platform auth service:

    ```
    Authorization: Bearer <your_jwt_token>
    ```

    ## API Versioning

    - `/v1/*` - Version 1 (current stable)
    - `/*` - Latest version
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add security headers middleware FIRST (before CORS)
app.add_middleware(SecurityHeadersMiddleware)

if settings.ENVIRONMENT == "development":
    logger.info("CORS: Development mode - allowing all origins")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
else:
    logger.info(f"CORS: allowed origins: {settings.cors_origins_list}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "User-Agent"],
    )


# Exception handlers
@app.exception_handler(RollupError)
async def rollup_exception_handler(request: Request, exc: RollupError):
    """Translate engine errors into the standard error envelope."""
    if isinstance(exc, ScopeDeniedError):
        audit_logger.log_scope_denied(exc.user_id, exc.assigned, exc.requested, exc.reason)
    elif isinstance(exc, MergeInvariantViolation):
        logger.error(f"Rejected inconsistent aggregation tree on {request.url.path}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return error_response_dict(exc.to_dict(), exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with standardized error responses."""
    if isinstance(exc.detail, dict):
        return error_response_dict(exc.detail, exc.status_code)
    return error_response_dict(
        {"success": False, "message": exc.detail, "data": None, "errors": None},
        exc.status_code,
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors[field] = error["msg"]

    return error_response_dict(
        {"success": False, "message": "Validation failed", "data": None, "errors": errors},
        422,
    )


@app.exception_handler(asyncpg.exceptions.PostgresError)
async def database_exception_handler(request: Request, exc: asyncpg.exceptions.PostgresError):
    """Handle database errors that escaped a row source."""
    logger.error(f"Database error: {exc}", exc_info=True)
    return error_response_dict(
        {"success": False, "message": "Database error occurred", "data": None, "errors": None},
        500,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return error_response_dict(
        {"success": False, "message": "An unexpected error occurred", "data": None, "errors": None},
        500,
    )


# Create versioned API router
v1_router = APIRouter(prefix="/v1")
v1_router.include_router(dashboards.mobilisation_router)
v1_router.include_router(elections.router)
v1_router.include_router(dashboards.election_results_router)
v1_router.include_router(hierarchy_cache.router)

app.include_router(v1_router)

# Also include routers at root level (latest version)
app.include_router(dashboards.mobilisation_router)
app.include_router(elections.router)
app.include_router(dashboards.election_results_router)
app.include_router(hierarchy_cache.router)


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint for monitoring and load balancers.

    Checks:
    - API service status
    - Database connectivity (through the pool)
    - Hierarchy cache

    Returns 200 if all healthy, 503 if any component is down.
    """
    health_status = {"status": "healthy", "timestamp": time.time(), "checks": {}}
    all_healthy = True

    health_status["checks"]["api"] = {"status": "healthy", "message": "API is running"}

    pool = get_pool()
    if pool is None:
        if settings.ENVIRONMENT != "test":
            all_healthy = False
        health_status["checks"]["database"] = {
            "status": "skipped" if settings.ENVIRONMENT == "test" else "unhealthy",
            "message": "Database pool not initialized",
        }
    else:
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            pool_size = pool.get_size()
            pool_idle = pool.get_idle_size()
            health_status["checks"]["database"] = {
                "status": "healthy",
                "message": "Database is accessible",
                "pool": {
                    "size": pool_size,
                    "max": pool.get_max_size(),
                    "idle": pool_idle,
                    "active": pool_size - pool_idle,
                },
            }
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            all_healthy = False
            health_status["checks"]["database"] = {
                "status": "unhealthy",
                "message": f"Database check failed: {e!s}",
            }

    cache = getattr(request.app.state, "hierarchy_cache", None)
    if cache is None:
        health_status["checks"]["hierarchy_cache"] = {
            "status": "degraded",
            "message": "Hierarchy cache not created yet",
        }
    else:
        stats = cache.stats()
        health_status["checks"]["hierarchy_cache"] = {
            "status": "healthy",
            "ttl_seconds": stats["ttl_seconds"],
            "entry_count": stats["entry_count"],
        }

    if not all_healthy:
        health_status["status"] = "unhealthy"
        return error_response(
            message="Health check failed",
            data=health_status,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return success_response(data=health_status)
