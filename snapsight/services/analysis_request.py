"""Value types passed between the router, the analysis service and the transports."""
from dataclasses import dataclass

from snapsight.errors import InputError
from snapsight.utils.data_uri import parse_data_uri


@dataclass(frozen=True)
class AnalysisRequest:
    """
    One capture event: camera frame and/or screen frame (data URIs), free text
    (typed or transcribed voice) and optional auxiliary context.
    """

    image: str | None = None
    screen_image: str | None = None
    text: str | None = None
    context: str | None = None

    def has_payload(self) -> bool:
        return bool(self.image or self.screen_image or (self.text or "").strip())

    def images(self) -> list[str]:
        return [i for i in (self.image, self.screen_image) if i]

    def validate(self) -> None:
        """Raise InputError unless there is something to analyze and every image is a valid data URI."""
        if not self.has_payload():
            raise InputError("Missing image, screen_image or text")
        for uri in self.images():
            parse_data_uri(uri)


@dataclass(frozen=True)
class AnalysisResult:
    text: str
    fingerprint: str
    cached: bool = False


@dataclass(frozen=True)
class RetryPolicy:
    """Total attempts (1 = no retry) and fixed delay between attempts."""

    attempts: int = 1
    backoff_seconds: float = 2.0

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")
