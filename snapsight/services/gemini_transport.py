"""
Gemini transport: one multimodal generate_content call per analysis.
Uses google-genai with an API key, or Vertex AI when no key is configured.
The SDK call is blocking, so it runs in the default executor.
"""
import asyncio
import logging
from pathlib import Path

from snapsight.config import Settings
from snapsight.errors import NetworkError, RateLimitedError, RemoteError
from snapsight.services.analysis_request import AnalysisRequest
from snapsight.utils.data_uri import parse_data_uri

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_INSTRUCTION = """You are a visual assistant. You receive captured frames from a user's camera
and/or screen, optionally with something the user said or typed and extra context.

Your task:
- Describe what is visible and what the user appears to be doing.
- If both camera and screen frames are present, relate them to each other.
- If the user asked something, answer it using what you see.
- Be concise, helpful and supportive."""

# Sampling settings of the original multimodal route
TEMPERATURE = 0.7
TOP_K = 40
TOP_P = 0.95
MAX_OUTPUT_TOKENS = 1024


def build_analysis_prompt(request: AnalysisRequest) -> str:
    """Text part sent after the image parts."""
    parts = []
    if request.image and request.screen_image:
        parts.append("The first image is the camera frame, the second is the screen frame.")
    elif request.image:
        parts.append("The image is a camera frame.")
    elif request.screen_image:
        parts.append("The image is a screen frame.")
    if request.context:
        parts.append(f"Context: {request.context.strip()}")
    if request.text and request.text.strip():
        parts.append(f"User input: {request.text.strip()}")
    else:
        parts.append("Analyze the image(s) in detail.")
    return "\n\n".join(parts)


class GeminiTransport:
    def __init__(self, settings: Settings):
        self._settings = settings
        self._client = None

    def _get_client(self):
        # Lazy client to avoid import/credentials errors at startup
        if self._client is not None:
            return self._client
        try:
            from google import genai
        except ImportError as e:
            raise RuntimeError(
                "Google GenAI not installed. pip install google-genai google-auth"
            ) from e

        settings = self._settings
        if settings.gemini_api_key:
            self._client = genai.Client(api_key=settings.gemini_api_key)
            return self._client

        if not settings.vertex_project_id:
            raise RuntimeError("Neither gemini_api_key nor vertex_project_id is configured")

        credentials = None
        if settings.vertex_credentials_path:
            from google.oauth2 import service_account

            path = Path(settings.vertex_credentials_path)
            if path.is_file():
                credentials = service_account.Credentials.from_service_account_file(
                    str(path),
                    scopes=["https://www.googleapis.com/auth/cloud-platform"],
                )

        self._client = genai.Client(
            vertexai=True,
            project=settings.vertex_project_id,
            location=settings.vertex_location,
            credentials=credentials,
        )
        return self._client

    def _generate(self, request: AnalysisRequest) -> str:
        from google.genai import errors, types

        client = self._get_client()
        contents = []
        for uri in request.images():
            mime, data = parse_data_uri(uri)
            contents.append(types.Part.from_bytes(data=data, mime_type=mime))
        contents.append(types.Part.from_text(text=build_analysis_prompt(request)))

        try:
            response = client.models.generate_content(
                model=self._settings.gemini_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=ANALYSIS_SYSTEM_INSTRUCTION,
                    temperature=TEMPERATURE,
                    top_k=TOP_K,
                    top_p=TOP_P,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
            )
        except errors.APIError as e:
            if e.code == 429:
                raise RateLimitedError(f"Gemini rate limited: {e.message}", retry_after=retry_delay(e)) from e
            raise RemoteError(f"Gemini API error: {e.message}", status_code=e.code) from e
        except Exception as e:
            raise NetworkError(f"Gemini request failed: {e}") from e

        return extract_text(response)

    async def analyze(self, request: AnalysisRequest) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._generate, request)


def extract_text(response) -> str:
    """First candidate's text. Raises RemoteError when the model returned nothing."""
    if not response or not response.candidates:
        raise RemoteError("Empty response from model")
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        raise RemoteError("No text in model response")
    text = getattr(response, "text", None) or candidate.content.parts[0].text
    if not text:
        raise RemoteError("No text in model response")
    return text


def retry_delay(error) -> float | None:
    """Seconds from the google.rpc.RetryInfo detail of a 429 (e.g. "37s"), if any."""
    body = getattr(error, "details", None)
    if not isinstance(body, dict):
        return None
    body = body.get("error", body)
    if not isinstance(body, dict):
        return None
    for detail in body.get("details") or []:
        if not isinstance(detail, dict) or not str(detail.get("@type", "")).endswith("google.rpc.RetryInfo"):
            continue
        delay = str(detail.get("retryDelay", "")).strip()
        if delay.endswith("s"):
            delay = delay[:-1]
        try:
            return float(delay)
        except ValueError:
            return None
    return None
