"""
Content key for cache lookups and in-flight dedup: SHA-256 over the whole payload.
Each field is framed with its name and byte length so content cannot shift between fields.
"""
import hashlib

from snapsight.services.analysis_request import AnalysisRequest

_FIELDS = ("image", "screen_image", "text", "context")


def fingerprint(request: AnalysisRequest) -> str:
    h = hashlib.sha256()
    for name in _FIELDS:
        value = getattr(request, name)
        if value is None:
            h.update(f"{name}:-;".encode())
            continue
        data = value.encode("utf-8")
        h.update(f"{name}:{len(data)};".encode())
        h.update(data)
    return h.hexdigest()
