"""One row per POST /api/analyze: session history and per-client request counting."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, Index
from snapsight.database import Base


class AnalysisRecord(Base):
    __tablename__ = "analysis_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(64), nullable=True, index=True)
    client_id = Column(String(64), nullable=False, index=True)  # client IP
    fingerprint = Column(String(64), nullable=True)  # null when input was rejected
    has_image = Column(Boolean, nullable=False, default=False)
    has_screen = Column(Boolean, nullable=False, default=False)
    has_text = Column(Boolean, nullable=False, default=False)
    text = Column(Text, nullable=True)  # user text / voice transcript
    response_text = Column(Text, nullable=True)
    cached = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="ok")  # "pending" | "ok" | "error"
    error_kind = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_analysis_records_client_created", "client_id", "created_at"),)
