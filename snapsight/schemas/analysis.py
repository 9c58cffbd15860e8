from pydantic import BaseModel, Field


# ---- Analyze ----

class RetryOptions(BaseModel):
    attempts: int = Field(1, ge=1, le=5, description="Total attempts; 1 = no retry")
    backoff_seconds: float = Field(2.0, ge=0, le=30, description="Delay between attempts")


class AnalyzeRequest(BaseModel):
    image: str | None = Field(None, description="Camera frame as data URI (data:image/jpeg;base64,...)")
    screen_image: str | None = Field(None, description="Screen-share frame as data URI")
    text: str | None = Field(None, max_length=8000, description="Typed text or voice transcript")
    context: str | None = Field(None, max_length=8000, description="Optional auxiliary context")
    session_id: str | None = Field(None, max_length=64)
    retry: RetryOptions | None = Field(None, description="Optional retry policy; server default when omitted")


class AnalyzeResponse(BaseModel):
    response: str
    cached: bool = False
    fingerprint: str
    timestamp: str
    session_id: str | None = None


# ---- Status ----

class QueueStatusResponse(BaseModel):
    pending: int = Field(..., description="Requests waiting for a slot")
    running: int = Field(..., description="Requests currently calling the analysis service")
    cache_size: int = Field(..., description="Cached responses")
    window_requests: int = Field(0, description="Calls started in the current rate window")


# ---- History ----

class AnalysisHistoryEntry(BaseModel):
    id: str
    created_at: str | None = None
    has_image: bool = False
    has_screen: bool = False
    has_text: bool = False
    text: str | None = None
    response: str | None = None
    cached: bool = False
    status: str = "ok"
    error_kind: str | None = None


class AnalysisHistoryResponse(BaseModel):
    session_id: str
    entries: list[AnalysisHistoryEntry]
