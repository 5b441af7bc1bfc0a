"""Models for plane rendering requests and results."""

from dataclasses import dataclass
from enum import Enum

from PIL import Image
from pydantic import BaseModel, Field


class RenderRequest(BaseModel):
    """Plane of one image selected by z-section and timepoint."""

    image_id: int
    z_plane: int = Field(default=0, ge=0)
    time_point: int = Field(default=0, ge=0)
    timeout_seconds: float | None = Field(default=None, gt=0)


class RenderState(str, Enum):
    """Progress of a single render invocation."""

    IDLE = "idle"
    HANDLE_ACQUIRED = "handle_acquired"
    CONFIGURED = "configured"
    RENDERED = "rendered"
    RELEASED = "released"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderedPlane:
    """Decoded plane plus the packed RGBA integers the engine returned."""

    raster: Image.Image
    packed_pixels: tuple[int, ...]
