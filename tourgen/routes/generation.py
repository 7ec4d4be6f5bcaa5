"""Generation run control routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from tourgen.config import settings
from tourgen.database import get_db
from tourgen.schemas.generation import (
    CancelResponse,
    ResetResponse,
    StartRequest,
    StartResponse,
    StatsResponse,
    StatusResponse,
)
from tourgen.services.content_stats import content_stats
from tourgen.services.run_state import GenerationRunStore
from tourgen.worker import GenerationWorker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generation", tags=["generation"])

_worker: Optional[GenerationWorker] = None

# Per client IP; headers_enabled adds Retry-After to 429 answers
limiter = Limiter(key_func=get_remote_address, headers_enabled=True)


def get_worker() -> GenerationWorker:
    """Process-wide worker, created on first use."""
    global _worker
    if _worker is None:
        _worker = GenerationWorker()
    return _worker


def get_store(worker: GenerationWorker = Depends(get_worker)) -> GenerationRunStore:
    return worker.store


@router.post("/start", response_model=StartResponse, status_code=202)
def start_generation(
    data: Optional[StartRequest] = None,
    worker: GenerationWorker = Depends(get_worker),
):
    """Start a generation run in the background."""
    data = data or StartRequest()

    if not worker.start(data.to_options()):
        logger.info("Start refused: generation already in progress")
        return JSONResponse(
            status_code=409,
            content=StartResponse(accepted=False, reason="Generation already in progress").model_dump(),
        )

    logger.info(f"Generation started with options {data.model_dump()}")
    return StartResponse(accepted=True)


@router.get("/status", response_model=StatusResponse)
@limiter.limit(lambda: f"{settings.STATUS_POLL_LIMIT_PER_MINUTE}/minute")
def get_generation_status(
    request: Request,
    response: Response,
    store: GenerationRunStore = Depends(get_store),
):
    """Current run record. Throttled per client IP."""
    return StatusResponse(**store.snapshot())


@router.post("/cancel", response_model=CancelResponse)
def cancel_generation(store: GenerationRunStore = Depends(get_store)):
    """Request cooperative cancellation of the active run."""
    accepted = store.request_cancel()
    if not accepted:
        logger.info("Cancel ignored: no generation in progress")
    return CancelResponse(accepted=accepted)


@router.post("/reset", response_model=ResetResponse)
def reset_generation(store: GenerationRunStore = Depends(get_store)):
    """Force the run record back to idle."""
    store.force_reset()
    return ResetResponse(accepted=True)


@router.get("/stats", response_model=StatsResponse)
def get_content_stats(db: Session = Depends(get_db)):
    """Content counts per city."""
    return StatsResponse(**content_stats(db))
