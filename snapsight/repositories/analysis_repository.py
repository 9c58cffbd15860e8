"""
Analysis history persistence. DB is the source of truth for history and per-client counts.
All operations are sync (used from endpoints directly or via run_in_executor).
"""
from datetime import datetime

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from snapsight.models.analysis_record import AnalysisRecord


def save_record(
    db: Session,
    client_id: str,
    *,
    session_id: str | None = None,
    fingerprint: str | None = None,
    has_image: bool = False,
    has_screen: bool = False,
    has_text: bool = False,
    text: str | None = None,
    response_text: str | None = None,
    cached: bool = False,
    status: str = "ok",
    error_kind: str | None = None,
) -> AnalysisRecord:
    record = AnalysisRecord(
        client_id=client_id,
        session_id=session_id,
        fingerprint=fingerprint,
        has_image=has_image,
        has_screen=has_screen,
        has_text=has_text,
        text=text,
        response_text=response_text,
        cached=cached,
        status=status,
        error_kind=error_kind,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def count_since(db: Session, client_id: str, since: datetime) -> int:
    return db.query(func.count(AnalysisRecord.id)).filter(
        AnalysisRecord.client_id == client_id,
        AnalysisRecord.created_at >= since,
    ).scalar() or 0


def oldest_since(db: Session, client_id: str, since: datetime) -> datetime | None:
    return db.query(func.min(AnalysisRecord.created_at)).filter(
        AnalysisRecord.client_id == client_id,
        AnalysisRecord.created_at >= since,
    ).scalar()


def get_session_history(db: Session, session_id: str, limit: int = 50) -> list[dict]:
    """Newest-first, like the UI's analysis history list."""
    rows = (
        db.query(AnalysisRecord)
        .filter(AnalysisRecord.session_id == session_id)
        .order_by(desc(AnalysisRecord.created_at))
        .limit(limit)
        .all()
    )
    return [
        {
            "id": r.id,
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "has_image": r.has_image,
            "has_screen": r.has_screen,
            "has_text": r.has_text,
            "text": r.text,
            "response": r.response_text,
            "cached": r.cached,
            "status": r.status,
            "error_kind": r.error_kind,
        }
        for r in rows
    ]


def delete_session_history(db: Session, session_id: str) -> int:
    deleted = (
        db.query(AnalysisRecord)
        .filter(AnalysisRecord.session_id == session_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def finish_record(db: Session, record_id: str, **fields) -> AnalysisRecord | None:
    """Fill in the outcome of a record reserved with status="pending"."""
    record = db.query(AnalysisRecord).filter(AnalysisRecord.id == record_id).first()
    if record is None:
        return None
    for key, value in fields.items():
        setattr(record, key, value)
    db.commit()
    db.refresh(record)
    return record
