import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from render_orchestrator.models.base import Base, TimestampMixin, UUIDMixin

RENDER_STATUS_RENDERING = "rendering"
RENDER_STATUS_RENDERED = "rendered"
RENDER_STATUS_FAILED = "failed"

TERMINAL_RENDER_STATUSES = frozenset({RENDER_STATUS_RENDERED, RENDER_STATUS_FAILED})


class RenderJob(Base, UUIDMixin, TimestampMixin):
    """One launched render. Rows are kept as an audit trail and never deleted."""

    __tablename__ = "render_jobs"

    timeline_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("timelines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Farm-assigned handles
    render_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    bucket: Mapped[str] = mapped_column(String(255), nullable=False)

    # Chunk plan actually accepted by the farm
    frames_per_chunk: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False)
    concurrency_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=1)

    # Status: rendering, rendered, failed
    status: Mapped[str] = mapped_column(String(50), default=RENDER_STATUS_RENDERING, index=True)

    # Output
    output_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    timeline: Mapped["TimelineRecord"] = relationship(  # noqa: F821
        "TimelineRecord", back_populates="render_jobs"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RENDER_STATUSES

    def __repr__(self) -> str:
        return f"<RenderJob {self.render_id} ({self.status})>"
