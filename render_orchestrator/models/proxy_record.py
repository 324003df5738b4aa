from sqlalchemy import Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from render_orchestrator.models.base import Base, TimestampMixin, UUIDMixin

PROXY_STATUS_UPLOADING = "uploading"
PROXY_STATUS_PROCESSING = "processing"
PROXY_STATUS_READY = "ready"
PROXY_STATUS_ERROR = "error"

PENDING_PROXY_STATUSES = frozenset({PROXY_STATUS_UPLOADING, PROXY_STATUS_PROCESSING})


class ProxyRecord(Base, UUIDMixin, TimestampMixin):
    """Transcode lifecycle of one source URL.

    A row in ``error`` is deleted and re-inserted on retry, never updated back
    to ``uploading``.
    """

    __tablename__ = "video_proxies"

    original_url: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    # Transcode service handle; null until the upload call succeeds
    stream_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status: uploading, processing, ready, error
    status: Mapped[str] = mapped_column(String(50), default=PROXY_STATUS_UPLOADING, index=True)

    proxy_url: Mapped[str | None] = mapped_column(Text, nullable=True)  # MP4 download
    playback_url: Mapped[str | None] = mapped_column(Text, nullable=True)  # HLS manifest
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_PROXY_STATUSES

    def __repr__(self) -> str:
        return f"<ProxyRecord {self.original_url[:40]} ({self.status})>"
