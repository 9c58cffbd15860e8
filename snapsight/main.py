import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from snapsight.config import get_settings
from snapsight.core.redis import build_redis_response_cache, close_redis, get_redis_client
from snapsight.routers import analyze
from snapsight.services.analysis_service import AnalysisService

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = await get_redis_client()
    shared_cache = build_redis_response_cache(client) if client else None
    service = AnalysisService.from_settings(settings, shared_cache=shared_cache)
    service.start()
    app.state.analysis_service = service
    logger.info(
        "Analysis service started (backend=%s, concurrency=%d, %d calls/%dms)",
        settings.analysis_backend, settings.queue_concurrency,
        settings.queue_interval_cap, settings.queue_interval_ms,
    )
    try:
        yield
    finally:
        await service.close()
        await close_redis()


app = FastAPI(title="Snapsight API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyze.router)


@app.get("/")
def root():
    return {"message": "Snapsight API", "docs": "/docs"}
