"""Plane and thumbnail rendering through short-lived server handles."""

import io
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TypeVar

from PIL import Image

from omero_browser.domain.rendering import RenderedPlane, RenderRequest, RenderState
from omero_browser.errors import DecodeFailed, RenderFailed
from omero_browser.services.connection import (
    ConnectionManager,
    RenderingHandle,
    ThumbnailHandle,
)
from omero_browser.services.metadata import MetadataReader

_logger = logging.getLogger(__name__)

_BASELINE_INACTIVE_CHANNEL = 0

Decoder = Callable[[bytes], Image.Image]
_Handle = TypeVar("_Handle", RenderingHandle, ThumbnailHandle)


def decode_raster(data: bytes) -> Image.Image:
    """Decode compressed image bytes into a detached Pillow image."""
    with io.BytesIO(data) as stream, Image.open(stream) as raster:
        raster.load()
        return raster.copy()


@contextmanager
def released(handle: _Handle, label: str) -> Iterator[_Handle]:
    """Close a server handle on every exit path.

    A failing close is logged and never replaces the outcome of the block.
    """
    try:
        yield handle
    finally:
        try:
            handle.close()
        except Exception as exc:
            _logger.warning("Failed to close %s: %s", label, exc)


@dataclass
class AssetRenderer:
    """Renders full planes and thumbnails for single images."""

    connection: ConnectionManager
    metadata: MetadataReader
    decoder: Decoder = decode_raster
    thumbnail_edge: int = 96
    last_state: RenderState = field(default=RenderState.IDLE, init=False)

    def render_full(
        self,
        image_id: int,
        z_plane: int = 0,
        time_point: int = 0,
        timeout_seconds: float | None = None,
    ) -> RenderedPlane:
        """Render one XY plane of an image and decode it.

        ``timeout_seconds`` overrides the session deadline for the calls made
        through this render's engine.
        """
        request = RenderRequest(
            image_id=image_id,
            z_plane=z_plane,
            time_point=time_point,
            timeout_seconds=timeout_seconds,
        )
        image = self.metadata.get_image(request.image_id)
        ctx = self.connection.current_context()

        self.last_state = RenderState.IDLE
        try:
            engine = self.connection.gateway.acquire_rendering_handle(
                ctx, image.pixels_id, request.timeout_seconds
            )
        except Exception as exc:
            self.last_state = RenderState.FAILED
            raise RenderFailed("Omero store interaction failed.") from exc

        try:
            with released(engine, "rendering engine"):
                self.last_state = RenderState.HANDLE_ACQUIRED
                packed, compressed = self._render_plane(engine, request)
                raster = self._decode(compressed, request.image_id)
        except Exception:
            self.last_state = RenderState.FAILED
            raise
        self.last_state = RenderState.RELEASED
        return RenderedPlane(raster=raster, packed_pixels=tuple(packed))

    def render_thumbnail(
        self,
        dataset_id: int,
        image_id: int,
        edge: int | None = None,
        timeout_seconds: float | None = None,
    ) -> io.BytesIO:
        """Return an ``edge`` x ``edge`` thumbnail of an image in a dataset."""
        size = self.thumbnail_edge if edge is None else edge
        if size <= 0:
            raise ValueError(f"Thumbnail edge must be positive, got {size}")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout_seconds}")
        image = self.metadata.find_image(dataset_id, image_id)
        ctx = self.connection.current_context()

        self.last_state = RenderState.IDLE
        try:
            store = self.connection.gateway.acquire_thumbnail_handle(
                ctx, image.pixels_id, timeout_seconds
            )
        except Exception as exc:
            self.last_state = RenderState.FAILED
            raise RenderFailed("Omero store interaction failed.") from exc

        try:
            with released(store, "thumbnail store"):
                self.last_state = RenderState.HANDLE_ACQUIRED
                try:
                    data = store.get_thumbnail(size, size)
                except Exception as exc:
                    raise RenderFailed(
                        f"Thumbnail request failed for image {image_id}"
                    ) from exc
                self.last_state = RenderState.RENDERED
        except Exception:
            self.last_state = RenderState.FAILED
            raise
        self.last_state = RenderState.RELEASED
        return io.BytesIO(data)

    def _render_plane(
        self, engine: RenderingHandle, request: RenderRequest
    ) -> tuple[list[int], bytes]:
        try:
            if not engine.lookup_settings():
                engine.reset_defaults()
                engine.lookup_settings()
            engine.load()
            engine.set_channel_active(_BASELINE_INACTIVE_CHANNEL, False)
            self.last_state = RenderState.CONFIGURED
            packed = engine.render_packed(request.z_plane, request.time_point)
            compressed = engine.render_compressed(request.z_plane, request.time_point)
        except Exception as exc:
            raise RenderFailed(
                f"Rendering failed for image {request.image_id} "
                f"(z={request.z_plane}, t={request.time_point})"
            ) from exc
        self.last_state = RenderState.RENDERED
        _logger.debug(
            "Rendered image %s z=%s t=%s (%s bytes)",
            request.image_id,
            request.z_plane,
            request.time_point,
            len(compressed),
        )
        return packed, compressed

    def _decode(self, compressed: bytes, image_id: int) -> Image.Image:
        try:
            return self.decoder(compressed)
        except Exception as exc:
            raise DecodeFailed(f"Image data of {image_id} could not be read.") from exc
