"""Single-session facade over an OMERO server."""

import io
from collections.abc import Mapping
from dataclasses import dataclass
from types import TracebackType

from omero_browser.config import Settings
from omero_browser.domain.models import (
    DatasetRecord,
    FileAnnotationRecord,
    ImageRecord,
    MapAnnotationRecord,
    ObjectRef,
    TargetKind,
)
from omero_browser.domain.rendering import RenderedPlane
from omero_browser.domain.sessions import Credentials, Session
from omero_browser.services.annotations import AnnotationWriter
from omero_browser.services.connection import ConnectionManager, RepositoryGateway
from omero_browser.services.hierarchy import HierarchyCache
from omero_browser.services.metadata import MetadataReader
from omero_browser.services.rendering import AssetRenderer


@dataclass
class ImageClient:
    """Browses projects, datasets and images over one connection.

    The connection is opened and closed only by :meth:`connect` and
    :meth:`disconnect` (or by using the client as a context manager); no
    read operation closes it.
    """

    connection: ConnectionManager
    hierarchy: HierarchyCache
    metadata: MetadataReader
    renderer: AssetRenderer
    writer: AnnotationWriter

    @classmethod
    def create(cls, gateway: RepositoryGateway, settings: Settings) -> "ImageClient":
        """Build a client whose services share one connection and one cache."""
        connection = ConnectionManager(
            gateway=gateway,
            server=settings.omero_host,
            credentials=Credentials(
                username=settings.omero_username,
                password=settings.omero_password,
            ),
            port=settings.omero_port,
        )
        metadata = MetadataReader(connection=connection, web_url=settings.web_url)
        return cls(
            connection=connection,
            hierarchy=HierarchyCache(connection),
            metadata=metadata,
            renderer=AssetRenderer(
                connection=connection,
                metadata=metadata,
                thumbnail_edge=settings.thumbnail_edge,
            ),
            writer=AnnotationWriter(connection),
        )

    def __enter__(self) -> "ImageClient":
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.connection.is_connected:
            self.disconnect()

    def connect(self) -> Session:
        return self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def session_id(self) -> str:
        return self.connection.session_id

    def load_projects(self) -> dict[int, str]:
        """Fetch the project/dataset hierarchy and return project id -> name."""
        return self.hierarchy.load_project_hierarchy()

    @property
    def project_map(self) -> Mapping[int, str]:
        return self.hierarchy.project_map

    @property
    def dataset_map(self) -> Mapping[int, frozenset[DatasetRecord]]:
        return self.hierarchy.dataset_map

    def get_project_info(self, project_id: int) -> dict[str, str]:
        return self.hierarchy.project_info(project_id)

    def get_datasets(self, project_id: int) -> dict[int, dict[str, str]]:
        return self.hierarchy.list_datasets(project_id)

    def get_images(self, dataset_id: int) -> dict[int, str]:
        return self.metadata.images_for_dataset(dataset_id)

    def get_image_record(self, dataset_id: int, image_id: int) -> ImageRecord:
        return self.metadata.image_info(dataset_id, image_id)

    def get_image_info(self, dataset_id: int, image_id: int) -> dict[str, str]:
        """Return the display strings of an image, channel labels included."""
        return self.metadata.image_summary(dataset_id, image_id)

    def render_image(
        self,
        image_id: int,
        z_plane: int = 0,
        time_point: int = 0,
        timeout_seconds: float | None = None,
    ) -> RenderedPlane:
        return self.renderer.render_full(
            image_id, z_plane, time_point, timeout_seconds
        )

    def get_thumbnail(
        self,
        dataset_id: int,
        image_id: int,
        edge: int | None = None,
        timeout_seconds: float | None = None,
    ) -> io.BytesIO:
        return self.renderer.render_thumbnail(
            dataset_id, image_id, edge, timeout_seconds
        )

    def create_project(self, name: str, description: str = "") -> int:
        return self.writer.create_project(name, description)

    def create_dataset(self, project_id: int, name: str, description: str = "") -> int:
        return self.writer.create_dataset(project_id, name, description)

    def add_map_annotation_to_project(
        self, project_id: int, key: str, value: str
    ) -> int:
        return self.writer.annotate_project(project_id, key, value)

    def add_map_annotation_to_dataset(
        self, dataset_id: int, key: str, value: str
    ) -> int:
        return self.writer.annotate_dataset(dataset_id, key, value)

    def fetch_map_annotations(
        self, kind: TargetKind, object_id: int
    ) -> list[MapAnnotationRecord]:
        return self.metadata.map_annotations(ObjectRef(TargetKind(kind), object_id))

    def fetch_file_annotations(
        self, kind: TargetKind, object_id: int
    ) -> list[FileAnnotationRecord]:
        return self.metadata.file_annotations(ObjectRef(TargetKind(kind), object_id))

    def get_image_download_link(self, image_id: int) -> str:
        return self.metadata.image_download_link(image_id)

    def get_annotation_file_download_link(self, annotation_id: int) -> str:
        return self.metadata.annotation_file_download_link(annotation_id)
