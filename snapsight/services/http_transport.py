"""
Generic HTTP transport: POST the payload as JSON to a configured endpoint and read
the result text from one field of the JSON reply ("response" by default).
- 429 -> RateLimitedError (Retry-After header, or "retryAfter" in ms in the body)
- other non-2xx, malformed JSON, missing field -> RemoteError
- connection errors / timeouts -> NetworkError
"""
import asyncio
import logging

import requests

from snapsight.errors import NetworkError, RateLimitedError, RemoteError
from snapsight.services.analysis_request import AnalysisRequest

logger = logging.getLogger(__name__)


def _retry_after_seconds(resp: requests.Response) -> float | None:
    header = resp.headers.get("Retry-After")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("retryAfter") is not None:
        try:
            return max(0.0, float(body["retryAfter"]) / 1000.0)
        except (TypeError, ValueError):
            return None
    return None


class HttpTransport:
    def __init__(
        self,
        endpoint_url: str,
        result_field: str = "response",
        timeout_seconds: float = 60.0,
        session: requests.Session | None = None,
    ):
        if not endpoint_url:
            raise ValueError("analysis_endpoint_url is not configured")
        self._url = endpoint_url
        self._field = result_field
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def _body(self, request: AnalysisRequest) -> dict:
        body = {
            "image": request.image,
            "screen_image": request.screen_image,
            "text": request.text,
            "context": request.context,
        }
        return {k: v for k, v in body.items() if v is not None}

    def _post(self, request: AnalysisRequest) -> str:
        try:
            resp = self._session.post(self._url, json=self._body(request), timeout=self._timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Analysis endpoint unreachable: {e}") from e

        if resp.status_code == 429:
            raise RateLimitedError(retry_after=_retry_after_seconds(resp))
        if not 200 <= resp.status_code < 300:
            raise RemoteError(
                f"Analysis endpoint returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteError("Analysis endpoint returned malformed JSON", status_code=resp.status_code) from e
        text = data.get(self._field) if isinstance(data, dict) else None
        if not isinstance(text, str) or not text:
            raise RemoteError(f"Analysis endpoint reply has no '{self._field}' text", status_code=resp.status_code)
        return text

    async def analyze(self, request: AnalysisRequest) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._post, request)

    def close(self) -> None:
        self._session.close()
