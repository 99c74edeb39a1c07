"""
errexplain/main.py — FastAPI application entry point
Includes: lifespan management (logging, store + quota tracker wiring),
          CORS, burst rate limiting, security headers, error envelope
          handlers, ping keep-alive endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from errexplain.clients.drive_client import get_document_store
from errexplain.config import get_settings
from errexplain.core import logging as app_logging
from errexplain.core.errors import (
    ErrExplainError,
    InputRejectedError,
    QuotaExceededError,
)
from errexplain.core.logging import setup_logging
from errexplain.core.quota import build_quota_tracker
from errexplain.core.rate_limiter import limiter
from errexplain.routers import api

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: structured logging, document store (None when Drive
    credentials are absent), quota tracker selected from config.
    """
    setup_logging(settings.log_level)
    logger.info("ErrExplain starting up...")

    store = get_document_store(settings)
    app.state.document_store = store
    app.state.quota_tracker = build_quota_tracker(settings, store)

    if not settings.ai_configured:
        logger.critical("GEMINI_API_KEY missing: /api/analyze-error will answer 503.")
    if store is None:
        logger.warning("Drive credentials missing: history and sharing disabled, quota is per-process.")

    logger.info("Startup complete.")
    yield
    logger.info("Shutting down ErrExplain.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="ErrExplain",
    description=(
        "Paste an error message, get a plain-English explanation, likely "
        "causes and step-by-step fixes. Five analyses per client per day."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)

# ── Rate limiting — slowapi per-minute bursts ─────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda req, exc: JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Please try again later."},
    ),
)
app.add_middleware(SlowAPIMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.public_base_url],
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ──────────────────────────────────────────────────────────────────────────────
# Error envelope — {"error": ...} plus per-type extras
# ──────────────────────────────────────────────────────────────────────────────

@app.exception_handler(InputRejectedError)
async def input_rejected_handler(request: Request, exc: InputRejectedError) -> JSONResponse:
    content = {"error": exc.reason}
    if exc.suggestion:
        content["suggestion"] = exc.suggestion
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(QuotaExceededError)
async def quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": f"Daily limit reached. You can analyze {exc.limit} errors per day.",
            "remaining": exc.remaining,
            "resetTime": exc.reset_time.isoformat(),
        },
    )


@app.exception_handler(ErrExplainError)
async def app_error_handler(request: Request, exc: ErrExplainError) -> JSONResponse:
    if exc.status_code >= 500:
        app_logging.log_error("api", request.url.path, exc)
    else:
        logger.info(f"{request.method} {request.url.path} → {exc.status_code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    app_logging.log_error("api", request.url.path, exc, {"method": request.method})
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to process error message. Please try again."},
    )


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api.router, prefix="/api", tags=["api"])


# ── Ping keep-alive endpoint ──────────────────────────────────────────────────
@app.get("/api/ping", tags=["health"])
async def ping():
    """Does NOT call any external services."""
    return {"status": "ok", "version": VERSION}
