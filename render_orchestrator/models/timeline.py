from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from render_orchestrator.models.base import Base, TimestampMixin, UUIDMixin


class TimelineRecord(Base, UUIDMixin, TimestampMixin):
    """A stored composition. Written by the editing UI; this service only reads
    the timeline and updates the render bookkeeping columns."""

    __tablename__ = "timelines"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timeline_data: Mapped[dict[str, Any]] = mapped_column(default=dict)

    # Status: draft, rendering, rendered, failed
    status: Mapped[str] = mapped_column(String(50), default="draft", index=True)

    # Most recent launch, so the UI can resume polling
    render_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    render_bucket: Mapped[str | None] = mapped_column(String(255), nullable=True)
    render_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    render_jobs: Mapped[list["RenderJob"]] = relationship(  # noqa: F821
        "RenderJob", back_populates="timeline", order_by="RenderJob.created_at"
    )

    def __repr__(self) -> str:
        return f"<TimelineRecord {self.id} ({self.status})>"
