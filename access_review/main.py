"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from access_review import config
from access_review.database import engine, Base, SessionLocal
from access_review.logging_config import configure_logging
from access_review.api.routes import router
from access_review.api.schemas import ErrorResponse
# Import models to register them with SQLAlchemy Base
from access_review.models.domain import Campaign, Subject, Item, ItemDecision, Approvals, Workflow  # noqa: F401
from access_review.models.audit import AuditEvent  # noqa: F401
from access_review.services.errors import (
    CampaignError,
    ConcurrencyConflictError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from access_review.services.scheduler import PeriodicRunner, escalation_task

configure_logging()
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    StateConflictError: 409,
    ConcurrencyConflictError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    runner = None
    if config.ESCALATION_SWEEP_INTERVAL_SECONDS > 0:
        runner = PeriodicRunner(escalation_task(SessionLocal), config.ESCALATION_SWEEP_INTERVAL_SECONDS)
        runner.start()
    yield
    if runner is not None:
        runner.stop(timeout=5)


# Create FastAPI app
app = FastAPI(
    title="Access Review Campaigns",
    description="Periodic user-access certification: review, decide, approve, remediate and close.",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["Access Review"])


@app.exception_handler(CampaignError)
async def campaign_error_handler(request: Request, exc: CampaignError):
    """Refusals are expected outcomes: map each kind to its status code."""
    status_code = ERROR_STATUS.get(type(exc), 400)
    errors = getattr(exc, "errors", [])
    logger.info(
        "Refused %s %s: %s %s",
        request.method, request.url.path, exc.code, exc.message,
    )
    body = ErrorResponse(code=exc.code, message=exc.message, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Access Review Campaigns"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
