"""
Data URI parsing for captured frames ("data:image/jpeg;base64,....").
Camera/screen captures arrive as canvas.toDataURL() output; the model needs raw bytes + mime type.
"""
import base64
import binascii
import re

from snapsight.errors import InputError

DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?),(?P<data>.*)$", re.S)


def parse_data_uri(value: str) -> tuple[str, bytes]:
    """
    Returns (mime_type, raw_bytes). Only base64 payloads are accepted.
    Raises InputError on anything else.
    """
    if not value or not isinstance(value, str):
        raise InputError("Image must be a non-empty data URI")
    m = _DATA_URI_RE.match(value.strip())
    if not m:
        raise InputError("Image is not a data URI")
    if ";base64" not in (m.group("params") or ""):
        raise InputError("Image data URI must be base64 encoded")
    mime = (m.group("mime") or DEFAULT_MIME_TYPE).lower()
    try:
        data = base64.b64decode(m.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError("Image data URI has invalid base64 data") from e
    if not data:
        raise InputError("Image data URI is empty")
    return mime, data
