import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from app.api.v1.routes import router as api_router
from app.api.v1.endpoints.notifications import get_notification_dispatcher
from app.core.config import get_provider_config, get_settings, parse_cors_origins
from app.core.database import Base, engine, session_scope
from app.core.errors import ExternalServiceError, PaymentError
from app.core.logging import configure_logging
from app.middlewares.rate_limit import limiter
from app import models  # noqa: F401  (registers tables on Base.metadata)


settings = get_settings()

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
_started_at = time.time()


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    if isinstance(exc, ExternalServiceError):
        logger.warning(
            "External service error on %s %s: %s raw=%s",
            request.method,
            request.url.path,
            exc.message,
            (exc.raw or "")[:2000],
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyTimeoutError)
async def sqlalchemy_timeout_handler(request: Request, exc: SQLAlchemyTimeoutError):
    logger.warning("Database pool timeout on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service is busy. Please retry in a moment."},
    )


allow_origins = parse_cors_origins(settings.cors_origins or "")
logger.info("CORS allow_origins=%s", allow_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins or ["*"],
    allow_credentials="*" not in allow_origins and bool(allow_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.on_event("startup")
def ensure_tables():
    if not settings.auto_create_tables:
        return
    # Optional local fallback for fresh environments.
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as exc:
        logger.warning("DB unavailable on startup, skipping table creation: %s", exc)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    # Liveness: process is up.
    return {
        "status": "ok",
        "uptime_seconds": int(max(0, time.time() - _started_at)),
        "service": settings.app_name,
    }


@app.get("/readyz")
def readyz():
    # Readiness: database reachable; provider and push configuration reported without calling out.
    provider = get_provider_config()
    checks = {
        "digiflazz_mode": provider.key_label,
        "digiflazz_configured": bool(provider.username and provider.api_key),
        "push_configured": get_notification_dispatcher().account is not None,
    }
    try:
        with session_scope() as db:
            db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Readiness DB check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "detail": "database_unavailable", **checks},
        )
    return {
        "status": "ready",
        "uptime_seconds": int(max(0, time.time() - _started_at)),
        **checks,
    }
