"""FastAPI application entry point."""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import inspect

from tourgen.database import engine
from tourgen.routes import generation
from tourgen.services.run_state import STATUS_IN_PROGRESS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Tourgen",
    description="Autonomous tourism content generation pipeline",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting for the polling endpoint
app.state.limiter = generation.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(generation.router)


def run_migrations():
    """Upgrade the database to the latest revision."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")


@app.on_event("startup")
async def startup_event():
    """Create the schema if needed and report a run left over from a previous process."""
    logger.info("Starting application...")

    try:
        if inspect(engine).has_table("settings"):
            logger.info("Database tables already exist, skipping migrations")
        else:
            logger.info("Running database migrations...")
            run_migrations()
            logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")
        return

    snapshot = generation.get_worker().store.snapshot()
    if snapshot["status"] == STATUS_IN_PROGRESS:
        logger.warning(
            f"Found a generation run still marked in progress (started {snapshot['started_at']}); "
            "no worker owns it, POST /generation/reset to clear it"
        )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Tourgen",
        "version": "0.1.0",
        "status": "running",
    }
