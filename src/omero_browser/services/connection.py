"""Session lifecycle against an OMERO server."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from omero_browser.domain.models import (
    Annotation,
    FileAnnotationRecord,
    ImageRecord,
    MapAnnotationRecord,
    NewProject,
    ObjectRef,
    ProjectDatasetLink,
    ProjectListing,
    ProjectRecord,
)
from omero_browser.domain.sessions import Credentials, SecurityContext, Session
from omero_browser.errors import AlreadyConnected, NotConnected, ServiceUnavailable

_logger = logging.getLogger(__name__)


class RenderingHandle(Protocol):
    """Stateful rendering engine bound to one pixel set."""

    def lookup_settings(self) -> bool:
        """Load stored rendering settings; False when none exist yet."""

    def reset_defaults(self) -> None:
        """Create and save default rendering settings."""

    def load(self) -> None:
        """Load engine state for the bound pixel set."""

    def set_channel_active(self, index: int, active: bool) -> None:
        """Switch a channel on or off for subsequent renders."""

    def render_packed(self, z_plane: int, time_point: int) -> list[int]:
        """Render one XY plane as packed RGBA integers."""

    def render_compressed(self, z_plane: int, time_point: int) -> bytes:
        """Render one XY plane as compressed image bytes."""

    def close(self) -> None:
        """Release the server-side engine."""


class ThumbnailHandle(Protocol):
    """Stateful thumbnail store bound to one pixel set."""

    def get_thumbnail(self, width: int, height: int) -> bytes:
        """Return encoded thumbnail bytes of the requested size."""

    def close(self) -> None:
        """Release the server-side store."""


class RepositoryGateway(Protocol):
    """Interface for the remote image repository."""

    def connect(
        self, server: str, port: int | None, username: str, password: str
    ) -> Session:
        """Open an authenticated session and return it."""

    def disconnect(self) -> None:
        """Close the current session."""

    def list_projects(self, ctx: SecurityContext) -> list[ProjectListing]:
        """Return all visible projects with their datasets."""

    def list_images(self, ctx: SecurityContext, dataset_id: int) -> list[ImageRecord]:
        """Return the images contained in a dataset."""

    def get_image(self, ctx: SecurityContext, image_id: int) -> ImageRecord | None:
        """Return a single image, if present."""

    def get_channel_metadata(self, ctx: SecurityContext, image_id: int) -> list[str]:
        """Return channel names of an image in channel order."""

    def acquire_rendering_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> RenderingHandle:
        """Create a rendering engine bound to a pixel set.

        ``timeout_seconds`` bounds each call made through the handle and
        overrides the session-wide deadline.
        """

    def acquire_thumbnail_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> ThumbnailHandle:
        """Create a thumbnail store bound to a pixel set."""

    def save_object(
        self, ctx: SecurityContext, obj: NewProject | ProjectDatasetLink
    ) -> ProjectRecord | ProjectDatasetLink:
        """Persist a new object and return the saved form."""

    def attach_annotation(
        self, ctx: SecurityContext, annotation: Annotation, target: ObjectRef
    ) -> int:
        """Save a map annotation linked to the target and return its id."""

    def list_map_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[MapAnnotationRecord]:
        """Return map annotations linked to the target."""

    def list_file_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[FileAnnotationRecord]:
        """Return file annotations linked to the target."""


@dataclass
class ConnectionManager:
    """Owns the single session of a client."""

    gateway: RepositoryGateway
    server: str
    credentials: Credentials
    port: int | None = None
    _session: Session | None = field(default=None, init=False, repr=False)

    @property
    def session(self) -> Session | None:
        """Return the live session, if any."""
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def session_id(self) -> str:
        """Return the id of the live session."""
        return self._require_session().session_id

    def connect(self) -> Session:
        """Open the session; fails if one is already live."""
        if self._session is not None:
            raise AlreadyConnected(
                f"Already connected to {self.server} as {self._session.username}"
            )
        if not self.server:
            raise ValueError("Server address must not be empty")
        if not self.credentials.username or not self.credentials.password:
            raise ValueError("Username and password must not be empty")
        if self.port is not None and self.port < 0:
            raise ValueError(f"Invalid port: {self.port}")

        port = self.port or None
        try:
            session = self.gateway.connect(
                self.server,
                port,
                self.credentials.username,
                self.credentials.password,
            )
        except Exception as exc:
            _logger.warning(
                "Connect to %s:%s failed: %s", self.server, port or "default", exc
            )
            raise ServiceUnavailable(
                "Error while accessing omero service: broken connection, "
                "expired session or not logged in"
            ) from exc
        self._session = session
        _logger.info(
            "Connected to %s as %s (group=%s)",
            self.server,
            session.username,
            session.security_context.group_id,
        )
        return session

    def disconnect(self) -> None:
        """Close the session; fails if none is live."""
        session = self._require_session()
        self._session = None
        try:
            self.gateway.disconnect()
        except Exception as exc:
            raise ServiceUnavailable(
                f"Failed to close session on {session.server}"
            ) from exc
        _logger.info("Disconnected from %s", session.server)

    def current_context(self) -> SecurityContext:
        """Return the security context of the live session."""
        return self._require_session().security_context

    def _require_session(self) -> Session:
        if self._session is None:
            raise NotConnected("No active session; call connect() first")
        return self._session
