"""
FastAPI Server for Sol YieldHunter
Serves the wallet, yields, portfolio, chat and AI endpoints
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.config import (
    API_RATE_LIMIT,
    CORS_ORIGINS,
    ENABLE_SCHEDULER,
    ENVIRONMENT,
    WEBAPP_URL,
    validate_config,
)
from config.logging import setup_logging
from config.sentry import init_sentry
from src.database.engine import dispose_engine
from src.api.router import router as api_router
from src.tasks.scheduler import YieldScheduler

# Logging must be configured before uvicorn imports the app
setup_logging()
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events
    """
    logger.info("Starting Sol YieldHunter API Server...")

    # NOTE: Database tables managed by Alembic migrations
    # Run: alembic upgrade head

    try:
        validate_config()
    except ValueError as e:
        logger.error(f"Configuration incomplete: {e}")

    scheduler = None
    if ENABLE_SCHEDULER:
        scheduler = YieldScheduler()
        scheduler.start()
        logger.info("Yield Scheduler started (ai scan / tvl refresh)")

    yield

    logger.info("Shutting down Sol YieldHunter API Server...")

    if scheduler is not None:
        scheduler.stop()
        logger.info("Yield Scheduler stopped")

    await dispose_engine()
    logger.info("Database connections closed")


# Per-IP limit, not per-user
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[API_RATE_LIMIT],
    storage_uri="memory://",
)

app = FastAPI(
    title="Sol YieldHunter API",
    description="Solana yield aggregator API",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


# CORS: exact origins only, no wildcards
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

if WEBAPP_URL and WEBAPP_URL not in allowed_origins:
    allowed_origins.append(WEBAPP_URL)

for origin in CORS_ORIGINS:
    if origin not in allowed_origins:
        allowed_origins.append(origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """
    Adds security headers to every response

    Headers:
    - Content-Security-Policy
    - X-Content-Type-Options
    - X-Frame-Options
    - Referrer-Policy
    - Permissions-Policy
    - Strict-Transport-Security (production over https only)
    """
    response = await call_next(request)

    is_production = ENVIRONMENT == "production"

    csp_directives = [
        "default-src 'self'",
        "img-src 'self' data: https:",
        # Wallet adapters talk to arbitrary RPC endpoints
        "connect-src 'self' https: wss:",
        "object-src 'none'",
        "base-uri 'self'",
        "frame-ancestors 'none'",
        "upgrade-insecure-requests" if is_production else "",
    ]
    response.headers["Content-Security-Policy"] = "; ".join(filter(None, csp_directives))
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = (
        "geolocation=(), "
        "microphone=(), "
        "camera=(), "
        "usb=()"
    )

    if is_production and request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )

    return response


app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "Sol YieldHunter API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """
    Health check endpoint
    """
    return {"status": "healthy"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Return the original status code and detail; 5xx logged as errors
    """
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")

    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if ENVIRONMENT == "development" else "An error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    try:
        validate_config()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        exit(1)

    logger.info("Configuration validated successfully")

    uvicorn.run(
        "api_server:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=ENVIRONMENT == "development",
        log_level="info",
    )
