"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from recruitflow.config import settings
from recruitflow.database import engine, Base
from recruitflow.api.routes import router
from recruitflow.errors import LifecycleError, lifecycle_error_handler, request_validation_error_handler
# Import models to register them with SQLAlchemy Base
from recruitflow.models.domain import Applicant
from recruitflow.models.audit import SystemAuditEvent

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("RecruitFlow started")
    yield
    logger.info("RecruitFlow stopped")


# Create FastAPI app
app = FastAPI(
    title="RecruitFlow - Applicant Pipeline",
    description="Tracks applicants through a fixed sequence of selection stages with a tamper-evident history.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_allow_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(LifecycleError, lifecycle_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

# Include API routes
app.include_router(router, prefix="/api", tags=["Applicants"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "ok", "service": "RecruitFlow"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
