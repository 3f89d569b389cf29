"""
GarmentFlow FastAPI Application Entry Point

- Global exception handlers (convert domain exceptions → HTTP responses)
- Observer Pattern: EventBus initialized at startup with audit and notification handlers
- Thin routers: every rule lives in the service layer
"""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from garmentflow.config import settings
from garmentflow.core.exceptions import GarmentFlowException, to_http_exception
from garmentflow.database import SessionLocal, create_tables, engine
from garmentflow.routers import materials, production_batches, stage_tasks, sub_batches
from garmentflow.utils.events import configure_event_bus
from garmentflow.utils.logging import configure_logging, request_id_var

configure_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Garment production workflow: stock ledger, stage tasks, sub-batch deliveries and warehouse intake",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS Middleware ───────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Request correlation and basic timing.
    - Reads incoming X-Request-ID (if present) or generates one
    - Binds it to the logging context for every record emitted while serving
    """
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)

    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)

    duration_ms = (time.perf_counter() - start) * 1000
    if settings.ENABLE_REQUEST_ID:
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

    if settings.ENABLE_REQUEST_LOGGING:
        logger.info(
            "request_completed method=%s path=%s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )

    if settings.ENABLE_SECURITY_HEADERS:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not settings.DEBUG:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={settings.STRICT_TRANSPORT_SECURITY_SECONDS}; includeSubDomains"
            )

    return response


# ── Global Exception Handlers ─────────────────────────────────────────────────

@app.exception_handler(GarmentFlowException)
async def garmentflow_exception_handler(request: Request, exc: GarmentFlowException) -> JSONResponse:
    """Routers never catch domain exceptions; they all end up here."""
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error("domain_error code=%s message=%s", exc.code, exc.message)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"success": False, "error": http_exc.detail},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": {"code": "VALIDATION_ERROR", "message": str(exc)}},
    )


# ── API Routers ───────────────────────────────────────────────────────────────
API_PREFIX = "/api/v1"
app.include_router(materials.router, prefix=API_PREFIX)
app.include_router(production_batches.router, prefix=API_PREFIX)
app.include_router(stage_tasks.cutting_router, prefix=API_PREFIX)
app.include_router(stage_tasks.sewing_router, prefix=API_PREFIX)
app.include_router(stage_tasks.finishing_router, prefix=API_PREFIX)
app.include_router(sub_batches.router, prefix=API_PREFIX)


# ── Lifecycle Events ──────────────────────────────────────────────────────────

@app.on_event("startup")
def startup_event():
    """
    1. Create database tables (development only; production runs Alembic)
    2. Register the post-commit EventBus handlers
    """
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    if settings.AUTO_CREATE_TABLES:
        create_tables()
    configure_event_bus(db_session_factory=SessionLocal)
    logger.info("EventBus initialized with logging, audit and notification handlers")


@app.on_event("shutdown")
def shutdown_event():
    logger.info("%s shutting down.", settings.APP_NAME)


# ── Health Endpoints ──────────────────────────────────────────────────────────

@app.get("/", tags=["Health"])
def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "status": "running",
    }


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}


@app.get("/ready", tags=["Health"])
def readiness_check(request: Request):
    """Lightweight readiness endpoint intended for orchestrators."""
    db_ok = True
    db_error = None

    if settings.READINESS_CHECK_DATABASE:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as exc:
            db_ok = False
            db_error = str(exc)

    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "ready" if db_ok else "not_ready",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "request_id": getattr(request.state, "request_id", None),
            "checks": {
                "database": {
                    "enabled": settings.READINESS_CHECK_DATABASE,
                    "ok": db_ok,
                    "error": db_error,
                }
            },
        },
    )
