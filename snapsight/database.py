"""
SQLAlchemy engine and session factory for the analysis history store.
analysis_records is the only table; it backs session history and per-client counts.
"""
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from snapsight.config import get_settings


def _connect_args(database_url: str) -> dict:
    # Sessions are opened in FastAPI's threadpool but used on the event loop thread
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


settings = get_settings()

engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=not settings.database_url.startswith("sqlite"),
    echo=False,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session for the analyze and history routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
