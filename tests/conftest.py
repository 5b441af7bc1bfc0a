"""Shared test fixtures."""

import io
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, replace

import pytest
from PIL import Image

from omero_browser.client import ImageClient
from omero_browser.config import Settings
from omero_browser.domain.models import (
    Annotation,
    DatasetRecord,
    FileAnnotationRecord,
    ImageRecord,
    MapAnnotationRecord,
    NewDataset,
    NewProject,
    ObjectRef,
    ProjectDatasetLink,
    ProjectListing,
    ProjectRecord,
    TargetKind,
)
from omero_browser.domain.sessions import SecurityContext, Session
from omero_browser.services.connection import (
    RenderingHandle,
    RepositoryGateway,
    ThumbnailHandle,
)


class RemoteError(Exception):
    """Stand-in for a server-side exception."""


def jpeg_bytes(width: int = 4, height: int = 3) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, "JPEG")
    return buffer.getvalue()


@dataclass
class FakeRenderingHandle(RenderingHandle):
    """Rendering engine that records calls and can fail on demand."""

    gateway: "InMemoryRepositoryGateway"
    pixels_id: int
    has_settings: bool = True
    fail_on: str | None = None
    fail_close: bool = False
    calls: list[tuple] = field(default_factory=list)

    def _record(self, name: str, *args) -> None:  # type: ignore[no-untyped-def]
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise RemoteError(f"{name} failed")

    def lookup_settings(self) -> bool:
        self._record("lookup_settings")
        return self.has_settings

    def reset_defaults(self) -> None:
        self._record("reset_defaults")
        self.has_settings = True

    def load(self) -> None:
        self._record("load")

    def set_channel_active(self, index: int, active: bool) -> None:
        self._record("set_channel_active", index, active)

    def render_packed(self, z_plane: int, time_point: int) -> list[int]:
        self._record("render_packed", z_plane, time_point)
        return [0xFF0000FF, 0xFF00FF00]

    def render_compressed(self, z_plane: int, time_point: int) -> bytes:
        self._record("render_compressed", z_plane, time_point)
        return self.gateway.compressed_payload

    def close(self) -> None:
        self.gateway.released += 1
        if self.fail_close:
            raise RemoteError("close failed")


@dataclass
class FakeThumbnailHandle(ThumbnailHandle):
    """Thumbnail store that returns a fixed payload."""

    gateway: "InMemoryRepositoryGateway"
    pixels_id: int
    fail_on: str | None = None
    fail_close: bool = False
    requested: list[tuple[int, int]] = field(default_factory=list)

    def get_thumbnail(self, width: int, height: int) -> bytes:
        self.requested.append((width, height))
        if self.fail_on == "get_thumbnail":
            raise RemoteError("get_thumbnail failed")
        return b"thumb-%d-%dx%d" % (self.pixels_id, width, height)

    def close(self) -> None:
        self.gateway.released += 1
        if self.fail_close:
            raise RemoteError("close failed")


@dataclass
class InMemoryRepositoryGateway(RepositoryGateway):
    """In-memory OMERO server that counts handle acquire/release calls."""

    projects: dict[int, ProjectRecord] = field(default_factory=dict)
    datasets: dict[int, DatasetRecord] = field(default_factory=dict)
    images: dict[int, list[ImageRecord]] = field(default_factory=dict)
    channels: dict[int, list[str]] = field(default_factory=dict)
    map_annotations: dict[ObjectRef, list[MapAnnotationRecord]] = field(
        default_factory=dict
    )
    file_annotations: dict[ObjectRef, list[FileAnnotationRecord]] = field(
        default_factory=dict
    )
    failures: dict[str, Exception] = field(default_factory=dict)
    handle_options: dict[str, object] = field(default_factory=dict)
    compressed_payload: bytes = field(default_factory=jpeg_bytes)
    group_id: int = 3
    connected: bool = False
    connect_calls: int = 0
    acquired: int = 0
    released: int = 0
    handles: list[object] = field(default_factory=list)
    timeouts: list[float | None] = field(default_factory=list)
    next_id: int = 500

    def _maybe_fail(self, name: str) -> None:
        if name in self.failures:
            raise self.failures[name]

    def _new_id(self) -> int:
        self.next_id += 1
        return self.next_id

    def connect(
        self, server: str, port: int | None, username: str, password: str
    ) -> Session:
        self.connect_calls += 1
        self._maybe_fail("connect")
        self.connected = True
        return Session(
            server=server,
            port=port,
            username=username,
            security_context=SecurityContext(group_id=self.group_id),
            session_id=f"session-{self.connect_calls}",
        )

    def disconnect(self) -> None:
        self._maybe_fail("disconnect")
        self.connected = False

    def list_projects(self, ctx: SecurityContext) -> list[ProjectListing]:
        self._maybe_fail("list_projects")
        return [
            ProjectListing(
                project=project,
                datasets=tuple(
                    dataset
                    for dataset in self.datasets.values()
                    if dataset.parent_project_id == project.id
                ),
            )
            for project in self.projects.values()
        ]

    def list_images(self, ctx: SecurityContext, dataset_id: int) -> list[ImageRecord]:
        self._maybe_fail("list_images")
        return list(self.images.get(dataset_id, []))

    def get_image(self, ctx: SecurityContext, image_id: int) -> ImageRecord | None:
        self._maybe_fail("get_image")
        for images in self.images.values():
            for image in images:
                if image.id == image_id:
                    return image
        return None

    def get_channel_metadata(self, ctx: SecurityContext, image_id: int) -> list[str]:
        self._maybe_fail("get_channel_metadata")
        return list(self.channels.get(image_id, []))

    def acquire_rendering_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> FakeRenderingHandle:
        self._maybe_fail("acquire_rendering_handle")
        self.timeouts.append(timeout_seconds)
        handle = FakeRenderingHandle(
            gateway=self, pixels_id=pixels_id, **self.handle_options
        )
        self.acquired += 1
        self.handles.append(handle)
        return handle

    def acquire_thumbnail_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> FakeThumbnailHandle:
        self._maybe_fail("acquire_thumbnail_handle")
        self.timeouts.append(timeout_seconds)
        options = {
            key: value
            for key, value in self.handle_options.items()
            if key in {"fail_on", "fail_close"}
        }
        handle = FakeThumbnailHandle(gateway=self, pixels_id=pixels_id, **options)
        self.acquired += 1
        self.handles.append(handle)
        return handle

    def save_object(
        self, ctx: SecurityContext, obj: NewProject | ProjectDatasetLink
    ) -> ProjectRecord | ProjectDatasetLink:
        self._maybe_fail("save_object")
        if isinstance(obj, NewProject):
            project = ProjectRecord(
                id=self._new_id(), name=obj.name, description=obj.description
            )
            self.projects[project.id] = project
            return project
        assert isinstance(obj.child, NewDataset)
        dataset = DatasetRecord(
            id=self._new_id(),
            name=obj.child.name,
            description=obj.child.description,
            parent_project_id=obj.parent_id,
        )
        self.datasets[dataset.id] = dataset
        return ProjectDatasetLink(
            parent_id=obj.parent_id,
            child=ObjectRef(TargetKind.DATASET, dataset.id),
        )

    def attach_annotation(
        self, ctx: SecurityContext, annotation: Annotation, target: ObjectRef
    ) -> int:
        self._maybe_fail("attach_annotation")
        record = MapAnnotationRecord(
            id=self._new_id(),
            namespace=annotation.namespace,
            values=((annotation.key, annotation.value),),
        )
        self.map_annotations.setdefault(target, []).append(record)
        return record.id

    def list_map_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[MapAnnotationRecord]:
        self._maybe_fail("list_map_annotations")
        return list(self.map_annotations.get(target, []))

    def list_file_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[FileAnnotationRecord]:
        self._maybe_fail("list_file_annotations")
        return list(self.file_annotations.get(target, []))


def _image(image_id: int, pixels_id: int, name: str, **kwargs: object) -> ImageRecord:
    defaults = {
        "description": f"{name} description",
        "size_x": 512,
        "size_y": 256,
        "size_z": 3,
        "size_t": 1,
        "size_c": 3,
    }
    defaults.update(kwargs)
    return ImageRecord(id=image_id, name=name, pixels_id=pixels_id, **defaults)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        omero_host="omero.example.org",
        omero_port=4064,
        omero_username="researcher",
        omero_password="secret",
    )


@pytest.fixture
def gateway() -> InMemoryRepositoryGateway:
    gateway = InMemoryRepositoryGateway()
    gateway.projects = {
        1: ProjectRecord(id=1, name="Screening", description="HCS run"),
        2: ProjectRecord(id=2, name="Live imaging", description=""),
    }
    gateway.datasets = {
        10: DatasetRecord(10, "Plate A", "first plate", parent_project_id=1),
        11: DatasetRecord(11, "Plate B", "second plate", parent_project_id=1),
        20: DatasetRecord(20, "Timelapse", "", parent_project_id=2),
    }
    gateway.images = {
        10: [
            _image(100, 1000, "well_A1.tif"),
            _image(101, 1001, "well_A2.tif"),
        ],
        20: [_image(200, 2000, "movie.czi", size_t=40, archived=True)],
    }
    gateway.channels = {100: ["DAPI", "GFP", "RFP"], 200: ["Brightfield"]}
    gateway.file_annotations = {
        ObjectRef(TargetKind.IMAGE, 100): [
            FileAnnotationRecord(
                id=77, namespace=None, file_name="results.csv", file_size=128
            )
        ]
    }
    return gateway


@pytest.fixture
def client(settings: Settings, gateway: InMemoryRepositoryGateway) -> ImageClient:
    return ImageClient.create(gateway, settings)


@pytest.fixture
def connected_client(client: ImageClient) -> ImageClient:
    client.connect()
    return client


def with_image(
    gateway: InMemoryRepositoryGateway, dataset_id: int, image: ImageRecord
) -> None:
    gateway.images.setdefault(dataset_id, []).append(image)


def renamed(image: ImageRecord, name: str) -> ImageRecord:
    return replace(image, name=name)


@pytest.fixture
def package_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger("omero_browser")
    logger.handlers.clear()
    yield logger
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
