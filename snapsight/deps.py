"""FastAPI dependencies for objects built in the app lifespan."""
from fastapi import HTTPException, Request, status

from snapsight.services.analysis_service import AnalysisService


def get_analysis_service(request: Request) -> AnalysisService:
    service = getattr(request.app.state, "analysis_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis service is not ready.",
        )
    return service


def get_client_id(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()[:64]
    return request.client.host if request.client else "unknown"
