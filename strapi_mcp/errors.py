"""Error taxonomy for the adapter and the mapping from backend responses onto it."""

from typing import Any, Dict, List, Optional

import httpx


class StrapiError(Exception):
    """Base class; carries the backend status and error details when there are any."""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def __str__(self) -> str:
        return self.message


class AuthenticationError(StrapiError):
    pass


class BackendUnreachableError(StrapiError):
    pass


class RateLimitedError(StrapiError):
    pass


class ValidationFailedError(StrapiError):
    pass


class MissingRequiredFieldsError(ValidationFailedError):
    """Required attributes are absent from a payload.

    ``missing`` holds ``{"name", "type", "location"}`` dicts, where location is
    ``"root"`` or the path of the component that lacks the field.
    """

    def __init__(self, missing: List[Dict[str, str]], provided: List[str]):
        self.missing = missing
        self.provided = provided
        super().__init__(self._render(missing, provided), status=400, details={"missing": missing})

    @staticmethod
    def _render(missing: List[Dict[str, str]], provided: List[str]) -> str:
        root = [m for m in missing if m["location"] == "root"]
        nested = [m for m in missing if m["location"] != "root"]
        lines = ["Missing required fields in data object:"]
        for field in root:
            lines.append(f"- {field['name']} (type: {field['type']})")
        if root:
            lines.append("Please add these fields at the root level of your data object.")
        if nested:
            lines.append("Missing required fields inside components:")
            for field in nested:
                lines.append(f"- {field['location']}.{field['name']} (type: {field['type']})")
        lines.append("")
        lines.append(f"Current data only includes: {', '.join(provided) or '(nothing)'}")
        return "\n".join(lines)


class NotFoundError(StrapiError):
    pass


class ForbiddenError(StrapiError):
    pass


class MediaError(ValidationFailedError):
    pass


class BackendError(StrapiError):
    pass


_STATUS_ERRORS = {
    400: ValidationFailedError,
    401: AuthenticationError,
    403: ForbiddenError,
    404: NotFoundError,
    429: RateLimitedError,
}


def _format_validation_details(details: Any) -> Optional[str]:
    errors = details.get("errors") if isinstance(details, dict) else None
    if not errors:
        return None
    parts = []
    for err in errors:
        path = ".".join(str(p) for p in err.get("path") or []) or "(root)"
        parts.append(f"- {path}: {err.get('message', 'invalid value')}")
    return "\n".join(parts)


def error_from_response(response: httpx.Response, method: str, path: str) -> StrapiError:
    """Build the exception matching a failed backend response.

    The backend's own message and details are kept verbatim; validation errors
    additionally list every offending path.
    """
    status = response.status_code
    message = f"HTTP {status} {response.reason_phrase}".rstrip()
    details = None
    try:
        body = response.json()
    except ValueError:
        body = response.text.strip() or None

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = error.get("message") or message
        details = error.get("details") or None
    elif isinstance(body, dict) and body.get("message"):
        message = str(body["message"])
    elif isinstance(body, str):
        message = f"{message}: {body[:500]}"

    listed = _format_validation_details(details)
    if listed:
        message = f"{message}\n{listed}"

    cls = _STATUS_ERRORS.get(status, BackendError)
    return cls(f"{method} {path} failed: {message}", status=status, details=details)
