"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings.
"""
import os

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

# Initialize Sentry for error tracking (must be done early)
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from invoicedesk import __version__

sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("APP_VERSION", __version__),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level="ERROR"),
        ],
        send_default_pii=False,
        before_send=lambda event, hint: _filter_sensitive_data(event),
    )


def _filter_sensitive_data(event: dict) -> dict:
    """Filter sensitive data from Sentry events before sending."""
    sensitive_keys = {"password", "token", "secret", "authorization", "api_key", "email"}

    def _redact(obj):
        if isinstance(obj, dict):
            return {
                k: "[REDACTED]" if any(s in k.lower() for s in sensitive_keys) else _redact(v)
                for k, v in obj.items()
            }
        elif isinstance(obj, list):
            return [_redact(item) for item in obj]
        return obj

    if "request" in event and "data" in event["request"]:
        event["request"]["data"] = _redact(event["request"]["data"])
    if "extra" in event:
        event["extra"] = _redact(event["extra"])

    return event


from slowapi.errors import RateLimitExceeded

from invoicedesk.api.routes import clients, dashboard, documents, invoices, monitoring
from invoicedesk.config import get_settings
from invoicedesk.database import SessionLocal, init_db
from invoicedesk.exceptions import InvoiceDeskError, ValidationError
from invoicedesk.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    configure_logging,
)
from invoicedesk.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from invoicedesk.middleware.security import SecurityHeadersMiddleware, get_cors_origins
from invoicedesk.services.extraction import get_document_extractor
from invoicedesk.services.storage import get_blob_store
from invoicedesk.services.worker import ProcessingWorker

settings = get_settings()

configure_logging(settings.log_level)

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="InvoiceDesk API",
    description="""
## Invoice Document Ingestion API

InvoiceDesk turns uploaded invoice documents into reviewed, committed invoices.

### Workflow

| Step | Description |
|------|-------------|
| Upload | PDF and image files are validated and stored as pending documents |
| Process | A background worker extracts invoice fields (text layer, OCR fallback) |
| Review | A reviewer edits the extracted fields and commits them into a draft invoice |

Invoices then move through draft, sent and paid. Overdue is derived from the
due date and is never stored.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Documents", "description": "Upload, processing and review of invoice documents"},
        {"name": "Invoices", "description": "Invoice search, editing, sending and payments"},
        {"name": "Clients", "description": "Billing clients"},
        {"name": "Dashboard", "description": "Summary totals"},
        {"name": "Monitoring", "description": "Health checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

app.add_middleware(SecurityHeadersMiddleware)

# Order matters: correlation ID first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(documents.router, prefix="/api/v1", tags=["Documents"])
app.include_router(invoices.router, prefix="/api/v1", tags=["Invoices"])
app.include_router(clients.router, prefix="/api/v1", tags=["Clients"])
app.include_router(dashboard.router, prefix="/api/v1", tags=["Dashboard"])

# Monitoring routes (no prefix for easy access)
app.include_router(monitoring.router, tags=["Monitoring"])


@app.exception_handler(InvoiceDeskError)
async def invoicedesk_exception_handler(request: Request, exc: InvoiceDeskError):
    """Handle all InvoiceDesk exceptions."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "invoicedesk_error",
        error_code=exc.error_code,
        kind=exc.kind,
        message=exc.message,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures in the common error envelope."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    error = ValidationError("Request validation failed", errors=errors)
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with consistent format."""
    sentry_sdk.capture_exception(exc)

    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        path=str(request.url.path),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "kind": "internal_error",
            "error_code": "IDK-999",
            "message": "An unexpected error occurred. Please try again.",
            "details": {"error_type": type(exc).__name__} if settings.debug else {},
        },
    )


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize application on startup."""
    logger.info("Starting InvoiceDesk API", debug=settings.debug)

    if sentry_dsn:
        logger.info("Sentry error tracking enabled", environment=os.getenv("ENVIRONMENT", "development"))
    else:
        logger.warning("Sentry error tracking not configured (SENTRY_DSN not set)")

    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    init_db()

    worker = ProcessingWorker(
        session_factory=SessionLocal,
        blob_store=get_blob_store(),
        extractor=get_document_extractor(),
        max_workers=settings.worker_count,
    )
    worker.recover_interrupted()
    app.state.worker = worker

    logger.info("InvoiceDesk API started successfully", workers=settings.worker_count)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Stop the processing worker on application shutdown."""
    logger.info("Shutting down InvoiceDesk API")
    worker = getattr(app.state, "worker", None)
    if worker is not None:
        await worker.shutdown()
