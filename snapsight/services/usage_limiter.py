"""
Per-client limit for POST /api/analyze, counted from analysis_records.
- Default: 20 requests per rolling minute per client (0 disables)
- Every request counts, cache hits and failures included
"""
import math
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from snapsight.repositories import analysis_repository

WINDOW = timedelta(minutes=1)


def check_client_limit(
    db: Session, client_id: str, limit: int, now: datetime | None = None
) -> tuple[bool, str, int]:
    """
    Returns (allowed, error_message, retry_after_seconds).
    If allowed, error_message is empty and retry_after_seconds is 0.
    """
    if limit <= 0:
        return True, "", 0
    now = now or datetime.utcnow()
    since = now - WINDOW
    count = analysis_repository.count_since(db, client_id, since)
    if count < limit:
        return True, "", 0
    oldest = analysis_repository.oldest_since(db, client_id, since) or now
    retry_after = max(1, math.ceil((oldest + WINDOW - now).total_seconds()))
    return False, f"Rate limit exceeded ({limit} analyze requests per minute). Try again in {retry_after}s.", retry_after
