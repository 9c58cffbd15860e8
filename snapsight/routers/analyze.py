"""
Analysis endpoints:
- POST /api/analyze — analyze camera/screen frames and/or text (per-client rate limited; cached; queued)
- GET /api/analyze/status — queue backlog, in-flight calls, cache size
- GET /api/analyze/history — recent analyses for a session
- DELETE /api/analyze/history — clear a session's history
- GET /api/analyze/health — shared cache (Redis) status
"""
import logging
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from snapsight.config import get_settings
from snapsight.database import get_db
from snapsight.deps import get_analysis_service, get_client_id
from snapsight.errors import (
    AnalysisError,
    BacklogFullError,
    InputError,
    NetworkError,
    RateLimitedError,
    RemoteError,
    TaskTimeoutError,
)
from snapsight.repositories import analysis_repository
from snapsight.schemas.analysis import (
    AnalysisHistoryEntry,
    AnalysisHistoryResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    QueueStatusResponse,
)
from snapsight.services.analysis_request import AnalysisRequest, RetryPolicy
from snapsight.services.analysis_service import AnalysisService
from snapsight.services.usage_limiter import check_client_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analyze", tags=["analyze"])

UNAVAILABLE_DETAIL = "AI service temporarily unavailable. Please try again later."

_ERROR_KINDS = (
    (InputError, "input"),
    (RateLimitedError, "rate_limited"),
    (BacklogFullError, "backlog_full"),
    (TaskTimeoutError, "timeout"),
    (RemoteError, "remote"),
    (NetworkError, "network"),
)


def _error_kind(e: Exception) -> str:
    for cls, kind in _ERROR_KINDS:
        if isinstance(e, cls):
            return kind
    return "internal"


def _http_error(e: AnalysisError) -> HTTPException:
    if isinstance(e, InputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, RateLimitedError):
        headers = None
        if e.retry_after is not None:
            headers = {"Retry-After": str(max(1, math.ceil(e.retry_after)))}
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="AI service is rate limited. Please try again later.",
            headers=headers,
        )
    if isinstance(e, BacklogFullError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis queue is full. Please try again later.",
        )
    if isinstance(e, TaskTimeoutError):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="AI service timed out. Please try again later.",
        )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=UNAVAILABLE_DETAIL)


def _reserve(db: Session, client_id: str, body: AnalyzeRequest) -> str | None:
    """
    Insert the request's history row as "pending" before any work, so it counts
    toward the client's limit while the analysis is still running.
    Best-effort: a DB failure must not fail the analysis.
    """
    try:
        record = analysis_repository.save_record(
            db,
            client_id,
            session_id=body.session_id,
            has_image=bool(body.image),
            has_screen=bool(body.screen_image),
            has_text=bool((body.text or "").strip()),
            text=body.text,
            status="pending",
        )
        return record.id
    except Exception as e:
        logger.warning("Saving analysis record failed: %s", e)
        db.rollback()
        return None


def _finish(db: Session, record_id: str | None, **fields) -> None:
    if record_id is None:
        return
    try:
        analysis_repository.finish_record(db, record_id, **fields)
    except Exception as e:
        logger.warning("Updating analysis record %s failed: %s", record_id, e)
        db.rollback()


# ---------- Analyze ----------


@router.post("", response_model=AnalyzeResponse)
async def analyze(
    body: AnalyzeRequest,
    db: Session = Depends(get_db),
    service: AnalysisService = Depends(get_analysis_service),
    client_id: str = Depends(get_client_id),
):
    """
    Analyze captured frames and/or text. Identical payloads within the freshness
    window are answered from cache; misses wait for a slot in the admission queue.
    """
    settings = get_settings()
    allowed, err, retry_after = check_client_limit(db, client_id, settings.client_requests_per_minute)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=err,
            headers={"Retry-After": str(retry_after)},
        )
    # No await between the check and the reservation: concurrent requests see each other's rows
    record_id = _reserve(db, client_id, body)

    request = AnalysisRequest(
        image=body.image,
        screen_image=body.screen_image,
        text=body.text,
        context=body.context,
    )
    retry = RetryPolicy(body.retry.attempts, body.retry.backoff_seconds) if body.retry else None

    try:
        result = await service.submit(request, retry=retry)
    except AnalysisError as e:
        if isinstance(e, InputError):
            logger.info("Rejected analysis input from %s: %s", client_id, e)
        else:
            logger.warning("Analysis failed for %s: %s", client_id, e)
        _finish(db, record_id, status="error", error_kind=_error_kind(e))
        raise _http_error(e) from e
    except Exception as e:
        logger.exception("Analysis failed")
        _finish(db, record_id, status="error", error_kind="internal")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=UNAVAILABLE_DETAIL) from e

    _finish(
        db, record_id,
        status="ok",
        fingerprint=result.fingerprint,
        response_text=result.text,
        cached=result.cached,
    )
    return AnalyzeResponse(
        response=result.text,
        cached=result.cached,
        fingerprint=result.fingerprint,
        timestamp=datetime.now(timezone.utc).isoformat(),
        session_id=body.session_id,
    )


# ---------- Status ----------


@router.get("/status", response_model=QueueStatusResponse)
def analyze_status(service: AnalysisService = Depends(get_analysis_service)):
    """Queue/cache counters for the UI. No I/O."""
    return QueueStatusResponse(**service.get_status().as_dict())


# ---------- History ----------


@router.get("/history", response_model=AnalysisHistoryResponse)
def analyze_history(
    session_id: str = Query(..., min_length=1, max_length=64),
    limit: int | None = Query(None, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Most recent analyses of a session, newest first."""
    limit = limit or get_settings().history_max_entries
    entries = analysis_repository.get_session_history(db, session_id, limit=limit)
    return AnalysisHistoryResponse(
        session_id=session_id,
        entries=[AnalysisHistoryEntry(**e) for e in entries],
    )


@router.delete("/history")
def clear_analyze_history(
    session_id: str = Query(..., min_length=1, max_length=64),
    db: Session = Depends(get_db),
):
    deleted = analysis_repository.delete_session_history(db, session_id)
    return {"session_id": session_id, "deleted": deleted}


# ---------- Health (Redis optional) ----------


@router.get("/health")
async def analyze_health():
    """Health check: Redis status (optional). DB not checked here."""
    from snapsight.core.redis import get_redis_client
    client = await get_redis_client()
    if client is None:
        return {"redis": "unavailable", "message": "Redis disabled or connection failed"}
    try:
        await client.ping()
        return {"redis": "ok"}
    except Exception as e:
        logger.warning("Redis health ping failed: %s", e)
        return {"redis": "error", "message": str(e)}
