DEFAULT_MESSAGE_MAX_CHARS = 300


def truncate_message(message: str | None, limit: int = DEFAULT_MESSAGE_MAX_CHARS) -> str | None:
    """Clip an error message before it is persisted and shown to end users."""
    if message is None:
        return None
    return message if len(message) <= limit else message[:limit]


def short_url(url: str, limit: int = 80) -> str:
    return url if len(url) <= limit else f"{url[:limit]}..."
