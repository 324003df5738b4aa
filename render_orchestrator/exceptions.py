"""Custom exceptions for the render orchestrator.

Each exception carries a machine-readable code and an HTTP status so the
API layer can turn it into an error body without knowing the concrete type.
"""

from typing import Any

from render_orchestrator.constants.error_codes import get_error_spec


class RenderCoreError(Exception):
    """Base exception for all render orchestrator errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_body(self) -> dict[str, Any]:
        """Convert exception to the JSON body returned to callers."""
        spec = get_error_spec(self.code)
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": spec.get("retryable", False),
        }
        suggested_fix = self.suggested_fix or spec.get("suggested_fix")
        if suggested_fix:
            body["suggested_fix"] = suggested_fix
        return body


# =============================================================================
# Configuration Errors (503)
# =============================================================================


class ConfigurationError(RenderCoreError):
    """External credentials are missing; every call would fail."""

    status_code = 503


class RenderFarmNotConfiguredError(ConfigurationError):
    code = "RENDER_FARM_NOT_CONFIGURED"
    message = "Render farm not configured yet. Deploy the render function and set its name and serve URL"


class StreamNotConfiguredError(ConfigurationError):
    code = "STREAM_NOT_CONFIGURED"
    message = "Cloudflare Stream not configured. Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_STREAM_TOKEN."


# =============================================================================
# Resource / Input Errors (400/404)
# =============================================================================


class TimelineNotFoundError(RenderCoreError):
    code = "TIMELINE_NOT_FOUND"
    status_code = 404
    message = "Timeline not found"

    def __init__(self, timeline_id: Any = None):
        message = f"Timeline not found: {timeline_id}" if timeline_id else self.message
        super().__init__(message)


class InvalidTimelineError(RenderCoreError):
    """Timeline data does not have the tracks/clips shape."""

    code = "INVALID_TIMELINE"
    status_code = 400
    message = "Timeline data is malformed"


# =============================================================================
# Render Farm Errors (502/503)
# =============================================================================


class RenderFarmError(RenderCoreError):
    """The render farm rejected a call or could not be reached.

    The farm exposes no structured error schema, so the original message text
    is kept verbatim for the rejection parser.
    """

    code = "RENDER_FARM_ERROR"
    status_code = 502
    message = "Render farm error"

    def __init__(self, message: str | None = None, *, farm_status: int | None = None):
        self.farm_status = farm_status
        super().__init__(message)


class RenderRetriesExhaustedError(RenderCoreError):
    code = "RENDER_RETRIES_EXHAUSTED"
    status_code = 503
    message = "Render launch retries exhausted"

    def __init__(self, attempts: int, last_error: RenderFarmError):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Render launch failed after {attempts} attempts: {last_error.message}")


# =============================================================================
# Transcode Service Errors
# =============================================================================


class StreamAPIError(RenderCoreError):
    """The transcode service returned an error envelope or was unreachable."""

    code = "STREAM_API_ERROR"
    status_code = 502
    message = "Cloudflare Stream error"


# =============================================================================
# Media Proxy Errors
# =============================================================================


class MediaProxyError(RenderCoreError):
    """The media proxy refused or failed to serve a URL."""

    code = "BAD_REQUEST"
    status_code = 400
    message = "Invalid media URL"


class MediaHostNotAllowedError(MediaProxyError):
    code = "MEDIA_HOST_NOT_ALLOWED"
    status_code = 403
    message = "Domain not in whitelist"

    def __init__(self, host: str | None = None):
        message = f"Domain not in whitelist: {host}" if host else self.message
        super().__init__(message)


class MediaFetchError(MediaProxyError):
    code = "MEDIA_FETCH_FAILED"
    status_code = 502
    message = "Upstream media fetch failed"
