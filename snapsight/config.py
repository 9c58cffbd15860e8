from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database (analysis history + per-client limits)
    database_url: str = "sqlite:///./snapsight.db"

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    # Analysis backend: "gemini" (google-genai SDK) or "http" (generic JSON endpoint)
    analysis_backend: str = "gemini"

    # Gemini: API key, or Vertex AI when gemini_api_key is empty
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-2.0-flash"

    # Generic HTTP analysis endpoint (analysis_backend = "http")
    analysis_endpoint_url: str = ""
    analysis_result_field: str = "response"
    analysis_http_timeout_seconds: float = 60.0

    # Response cache
    cache_ttl_seconds: float = 600
    cache_max_entries: int = 1000
    cache_reap_interval_seconds: float = 300

    # Admission queue: 10 concurrent calls, at most 15 call-starts per 1000 ms and 60 per minute
    queue_concurrency: int = 10
    queue_interval_ms: int = 1000
    queue_interval_cap: int = 15
    queue_minute_cap: int = 60  # overall starts per rolling minute; 0 = no minute budget
    queue_max_backlog: int = 0  # 0 = unbounded
    queue_task_timeout_seconds: float = 0  # 0 = no per-call timeout

    # Default retry policy for POST /api/analyze (1 = no retry)
    retry_attempts: int = 1
    retry_backoff_seconds: float = 2.0

    # Redis (optional shared response cache; empty = in-memory only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # Per-client requests per minute on POST /api/analyze (0 = disabled)
    client_requests_per_minute: int = 20

    # Analysis history returned per session
    history_max_entries: int = 50

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
