"""Domain models for the project/dataset/image hierarchy."""

from dataclasses import dataclass
from enum import Enum

NS_CLIENT_CREATED = "openmicroscopy.org/omero/client/mapAnnotation"


class TargetKind(str, Enum):
    """Object types that can carry annotations."""

    PROJECT = "Project"
    DATASET = "Dataset"
    IMAGE = "Image"


@dataclass(frozen=True)
class ObjectRef:
    """Reference to a remote object by type and id only."""

    kind: TargetKind
    id: int


@dataclass(frozen=True)
class ProjectRecord:
    """Snapshot of a project."""

    id: int
    name: str
    description: str


@dataclass(frozen=True)
class DatasetRecord:
    """Snapshot of a dataset and the project that owns it."""

    id: int
    name: str
    description: str
    parent_project_id: int


@dataclass(frozen=True)
class ProjectListing:
    """A project together with the datasets it contains."""

    project: ProjectRecord
    datasets: tuple[DatasetRecord, ...]


@dataclass(frozen=True)
class ImageRecord:
    """Snapshot of an image and the geometry of its primary pixel set."""

    id: int
    name: str
    description: str
    pixels_id: int
    size_x: int
    size_y: int
    size_z: int
    size_t: int
    size_c: int = 0
    channel_names: tuple[str, ...] = ()
    archived: bool | None = None

    @property
    def channel_summary(self) -> str:
        """Channel names joined for display, e.g. ``"DAPI, GFP"``."""
        return ", ".join(self.channel_names)

    @property
    def size_summary(self) -> str:
        """Pixel dimensions formatted as ``"X x Y x Z"``."""
        return f"{self.size_x} x {self.size_y} x {self.size_z}"


@dataclass(frozen=True)
class Annotation:
    """Single key/value pair to attach to a project or dataset."""

    key: str
    value: str
    namespace: str = NS_CLIENT_CREATED


@dataclass(frozen=True)
class MapAnnotationRecord:
    """Key/value annotation as stored on the server."""

    id: int
    namespace: str | None
    values: tuple[tuple[str, str], ...]

    def as_dict(self) -> dict[str, str]:
        """Return the pairs as a mapping; later duplicate keys win."""
        return dict(self.values)


@dataclass(frozen=True)
class FileAnnotationRecord:
    """File attachment annotation as stored on the server."""

    id: int
    namespace: str | None
    file_name: str
    file_size: int | None


@dataclass(frozen=True)
class NewProject:
    """Unsaved project."""

    name: str
    description: str


@dataclass(frozen=True)
class NewDataset:
    """Unsaved dataset."""

    name: str
    description: str


@dataclass(frozen=True)
class ProjectDatasetLink:
    """Parent/child link between a project and a dataset.

    Before saving ``child`` is a ``NewDataset``; the saved link returned by
    the server carries an ``ObjectRef`` to the persisted dataset instead.
    """

    parent_id: int
    child: NewDataset | ObjectRef
