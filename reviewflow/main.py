"""
ReviewFlow API - Main Application

Review request automation: trigger ingestion, sequence enrollment and the
polling executor that sends review requests.

SECURITY FEATURES:
- Conditional API docs (disabled in production)
- Shared-secret authentication on cron and webhook endpoints
- Problem-details errors that hide internals outside DEBUG
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from reviewflow.api.v2.router import api_router
from reviewflow.api.cron import router as cron_router
from reviewflow.webhooks.events import router as webhook_router
from reviewflow.config import settings
from reviewflow.core.sentry import init_sentry
from reviewflow.database import init_db
from reviewflow.exceptions import ReviewFlowException, create_exception_handlers
from reviewflow.middleware.correlation import CorrelationIdMiddleware, CorrelationLogFilter
from reviewflow.tasks.automation_scheduler import start_automation_scheduler, stop_automation_scheduler

# Import all models to register them with SQLAlchemy metadata before init_db()
from reviewflow.models import (  # noqa: F401
    Business, Customer, Sequence, SequenceStep, SequenceEnrollment,
    SequenceStepExecution, ScheduledJob, AutomationTemplate, ReviewRequest,
    MessageSend, TelemetryEvent,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s/%(request_id)s] %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting ReviewFlow API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    init_sentry()

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Exception text may contain the connection string
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    start_automation_scheduler()
    yield

    stop_automation_scheduler()
    logger.info("Shutting down ReviewFlow API...")


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="ReviewFlow API",
    description="Review request automation for service businesses",
    version=settings.VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:3000",
        "http://localhost:5173",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers()
app.add_exception_handler(ReviewFlowException, handlers["reviewflow"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v2")
app.include_router(cron_router, prefix="/_cron", tags=["cron"])
app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "ReviewFlow API",
        "version": settings.VERSION,
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reviewflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
