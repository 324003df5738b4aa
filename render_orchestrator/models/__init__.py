from render_orchestrator.models.base import Base
from render_orchestrator.models.proxy_record import ProxyRecord
from render_orchestrator.models.render_job import RenderJob
from render_orchestrator.models.timeline import TimelineRecord

__all__ = [
    "Base",
    "TimelineRecord",
    "RenderJob",
    "ProxyRecord",
]
