"""SafeReport API: FastAPI application with per-request store selection."""
from __future__ import annotations

import logging

from safereport.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from config.settings import settings
from safereport import __version__
from safereport.api import admin, auth, chat, notifications, reports
from safereport.api.deps import get_store
from safereport.db.engine import async_session, engine
from safereport.db.tables import Base
from safereport.errors import SafeReportError, Unexpected
from safereport.middleware.request_id import RequestIDMiddleware
from safereport.realtime import gateway
from safereport.realtime.hub import ConnectionHub
from safereport.services.classifier import KeywordClassifier
from safereport.store import MemoryStore, SqlStore, StoreSelector
from safereport.store.base import Store
from safereport.store.seed import seed_privileged_accounts

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Reporters are anonymous; never ship request PII
        send_default_pii=False,
        before_send=lambda event, hint: (
            {**event, "request": {**event.get("request", {}), "cookies": None, "headers": None}}
            if "request" in event else event
        ),
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config, create tables and seed the privileged accounts."""
    from safereport.startup_checks import validate_settings
    validate_settings()

    selector: StoreSelector = app.state.store_selector
    if selector.mode != "memory":
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready")
            if settings.SEED_PRIVILEGED_ACCOUNTS:
                await seed_privileged_accounts(selector.durable)
        except Exception:
            # Requests fall back to the memory store until the database answers
            logger.exception("Database setup failed; API still starts")

    yield

    logger.info("Shutting down, draining connections...")
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="SafeReport API",
    version=__version__,
    description="Anonymous campus incident reporting with real-time case chat",
    lifespan=lifespan,
)

app.state.memory_store = MemoryStore(seed=True)
app.state.store_selector = StoreSelector(
    SqlStore(async_session),
    app.state.memory_store,
    mode=settings.STORE_BACKEND,
    probe_timeout=settings.STORE_PROBE_TIMEOUT_SECONDS,
)
app.state.hub = ConnectionHub()
app.state.classifier = KeywordClassifier()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID tracing
app.add_middleware(RequestIDMiddleware)

app.include_router(auth.router)
app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(chat.router)
app.include_router(notifications.router)
app.include_router(gateway.router)


@app.get("/health")
async def health(request: Request, store: Store = Depends(get_store)):
    """Liveness plus which backend is serving right now."""
    durable = store.name == "durable"
    return {
        "status": "ok" if durable else "degraded",
        "backend": store.name,
        "connections": request.app.state.hub.connection_count,
        "version": __version__,
    }


@app.get("/ready")
async def readiness(store: Store = Depends(get_store)):
    """Readiness probe for orchestrators.

    The memory fallback keeps the API serving, so only a pinned durable
    backend that fails its ping reports not-ready.
    """
    try:
        await store.ping()
    except Exception:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "database unavailable"})
    return {"ready": True, "backend": store.name}


# ── Error Handlers ────────────────────────────────

@app.exception_handler(SafeReportError)
async def safereport_error_handler(request: Request, exc: SafeReportError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.code,
        "message": exc.message,
    })


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean, structured validation errors instead of raw Pydantic output."""
    errors = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"]) if err.get("loc") else "unknown"
        errors.append({"field": field, "message": err["msg"]})
    return JSONResponse(status_code=422, content={
        "error": "validation_error",
        "message": "Invalid request data",
        "details": errors,
    })


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    """Consistent error envelope for all HTTP errors."""
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.detail if isinstance(exc.detail, str) else "error",
        "message": exc.detail,
    })


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions; never leak stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return await safereport_error_handler(request, Unexpected())
