import re
from typing import Any

BINARY_MIN_LENGTH = 1000
_PROBE_LENGTH = 100
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


def looks_like_binary(value: str, min_length: int = BINARY_MIN_LENGTH) -> bool:
    return len(value) > min_length and bool(_BASE64_RE.match(value[:_PROBE_LENGTH]))


def redact_binary(data: Any, min_length: int = BINARY_MIN_LENGTH) -> Any:
    """Replace large base64-looking strings with a placeholder that keeps their length."""
    if isinstance(data, list):
        return [redact_binary(item, min_length) for item in data]
    if isinstance(data, dict):
        return {key: redact_binary(value, min_length) for key, value in data.items()}
    if isinstance(data, str) and looks_like_binary(data, min_length):
        return f"[BASE64_DATA_FILTERED - {len(data)} chars]"
    return data
