"""Timeline wire schema.

Timelines arrive as camelCase JSON produced by the editor. Only the shape this
service relies on is declared; every other field is carried through untouched
so the render farm receives the full composition.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from render_orchestrator.exceptions import InvalidTimelineError


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# =============================================================================
# Clips (tagged by "type")
# =============================================================================


class VideoClip(WireModel):
    type: Literal["video"]
    src: str
    proxy_src: str | None = None


class ImageClip(WireModel):
    type: Literal["image"]
    src: str
    proxy_src: str | None = None


class AudioClip(WireModel):
    type: Literal["audio"]
    src: str
    proxy_src: str | None = None


class TemplateClip(WireModel):
    """Code-rendered clip; any ``src`` it carries is ignored."""

    type: Literal["template"]
    template_id: str | None = None


Clip = Annotated[VideoClip | ImageClip | AudioClip | TemplateClip, Field(discriminator="type")]
MediaClip = VideoClip | ImageClip | AudioClip


class Track(WireModel):
    clips: list[Clip]


class Timeline(WireModel):
    width: int
    height: int
    fps: float
    duration_in_frames: int = Field(ge=1)
    tracks: list[Track]

    def clips(self) -> list[Clip]:
        return [clip for track in self.tracks for clip in track.clips]

    def to_wire(self) -> dict[str, Any]:
        """Serialize back to the camelCase JSON the farm and the player expect."""
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_timeline(data: Any) -> Timeline:
    """Validate stored timeline JSON, raising InvalidTimelineError on bad shape."""
    if not isinstance(data, dict) or not data:
        raise InvalidTimelineError("Timeline has no data")
    try:
        return Timeline.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", []))
        raise InvalidTimelineError(f"Invalid timeline at {loc}: {first.get('msg')}") from e


def collect_video_urls(timeline: Timeline) -> list[str]:
    """Unique video clip sources, in timeline order."""
    urls: dict[str, None] = {}
    for clip in timeline.clips():
        if isinstance(clip, VideoClip) and clip.src:
            urls.setdefault(clip.src, None)
    return list(urls)
