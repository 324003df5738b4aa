"""Error codes dictionary.

Single source of truth for every error code the API can return, whether a
caller may retry it, and a human-readable fix suggestion. Used by the
exception handlers to build error response bodies.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Configuration errors (never retried)
    # ==========================================================================
    "RENDER_FARM_NOT_CONFIGURED": {
        "retryable": False,
        "suggested_fix": (
            "Set RENDER_FARM_API_URL, RENDER_FUNCTION_NAME and RENDER_SERVE_URL "
            "after deploying the render function"
        ),
    },
    "STREAM_NOT_CONFIGURED": {
        "retryable": False,
        "suggested_fix": "Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_STREAM_TOKEN",
    },
    # ==========================================================================
    # Resource / input errors
    # ==========================================================================
    "TIMELINE_NOT_FOUND": {
        "retryable": False,
    },
    "INVALID_TIMELINE": {
        "retryable": False,
        "suggested_fix": "Timeline must contain a tracks array whose tracks contain clips arrays",
    },
    "BAD_REQUEST": {
        "retryable": False,
    },
    "UNAUTHORIZED": {
        "retryable": False,
        "suggested_fix": "Sign in or send the X-Api-Key header",
    },
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    # ==========================================================================
    # Render farm errors
    # ==========================================================================
    "RENDER_FARM_ERROR": {
        "retryable": False,
    },
    "RENDER_RETRIES_EXHAUSTED": {
        "retryable": True,
        "suggested_fix": "Wait for other renders on the account to finish, then launch again",
    },
    # ==========================================================================
    # Transcode service errors
    # ==========================================================================
    "STREAM_API_ERROR": {
        "retryable": True,
    },
    # ==========================================================================
    # Media proxy errors
    # ==========================================================================
    "MEDIA_HOST_NOT_ALLOWED": {
        "retryable": False,
    },
    "MEDIA_FETCH_FAILED": {
        "retryable": True,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code."""
    return ERROR_CODES.get(code, {"retryable": False})
