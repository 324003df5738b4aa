from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RenderLaunchRequest(CamelModel):
    timeline_id: UUID
    watch: bool = False  # Enqueue the background watcher after launch


class RenderLaunchResponse(CamelModel):
    render_id: str
    bucket_name: str
    frames_per_lambda: int
    estimated_chunks: int
    concurrency_limit: int
    attempt: int


class RenderProgressResponse(CamelModel):
    done: bool
    progress: float | None = None  # 0..1 while running
    url: str | None = None
    size: int | None = None
    failed: bool | None = None
    error: str | None = None
