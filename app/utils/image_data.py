"""
IMAGE DATA URI UTILITY
======================

Photos travel through the pipeline as data URIs:

    data:<mime>;base64,<payload>

This is the form the vision model accepts inline and the form stored in
Firestore, so uploads are converted once (encode_data_uri) and never decoded
again except to measure their size.
"""

import base64
import binascii
import re
from typing import Tuple

from app.errors import InvalidImageError

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$")


def encode_data_uri(data: bytes, media_type: str) -> str:
    """Turn raw bytes + media type into a data URI. Empty data is rejected."""
    if not data:
        raise InvalidImageError("The uploaded image is empty.")
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{media_type};base64,{payload}"


def parse_data_uri(data_uri: str) -> Tuple[str, str]:
    """Return (media_type, base64_payload). Raises InvalidImageError if malformed."""
    match = _DATA_URI_RE.match(data_uri or "")
    if not match:
        raise InvalidImageError("Expected a base64 data URI (data:<mimetype>;base64,<data>).")
    payload = match.group("payload")
    try:
        base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Invalid base64 image data: {e}") from e
    return match.group("mime").lower(), payload


def decoded_size(data_uri: str) -> int:
    """Number of bytes the payload decodes to, computed without decoding it."""
    _, payload = parse_data_uri(data_uri)
    payload = "".join(payload.split())
    padding = len(payload) - len(payload.rstrip("="))
    return (len(payload) * 3) // 4 - padding
