"""omero-py BlitzGateway implementation of the repository gateway."""

import logging
from dataclasses import dataclass, field

import omero
import omero.clients  # noqa: F401  registers omero.client
from omero.gateway import BlitzGateway, FileAnnotationWrapper, MapAnnotationWrapper
from omero.model import (
    DatasetAnnotationLinkI,
    DatasetI,
    ImageAnnotationLinkI,
    ImageI,
    MapAnnotationI,
    NamedValue,
    ProjectAnnotationLinkI,
    ProjectDatasetLinkI,
    ProjectI,
)
from omero.romio import XY, PlaneDef
from omero.rtypes import rint, rstring

from omero_browser.config import DEFAULT_OMERO_PORT
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
from omero_browser.services.connection import RepositoryGateway

_logger = logging.getLogger(__name__)

_MODEL_TYPES = {
    TargetKind.PROJECT: ProjectI,
    TargetKind.DATASET: DatasetI,
    TargetKind.IMAGE: ImageI,
}
_ANNOTATION_LINK_TYPES = {
    TargetKind.PROJECT: ProjectAnnotationLinkI,
    TargetKind.DATASET: DatasetAnnotationLinkI,
    TargetKind.IMAGE: ImageAnnotationLinkI,
}


def _call_context(ctx: SecurityContext) -> dict[str, str]:
    """Ice call context scoping a service call to the session group."""
    return {"omero.group": str(ctx.group_id)}


@dataclass
class BlitzRenderingHandle:
    """Rendering engine proxy bound to one pixel set."""

    proxy: object
    pixels_id: int
    call_context: dict[str, str]

    def lookup_settings(self) -> bool:
        return bool(self.proxy.lookupRenderingDef(self.pixels_id, self.call_context))

    def reset_defaults(self) -> None:
        self.proxy.resetDefaultSettings(True, self.call_context)

    def load(self) -> None:
        self.proxy.load(self.call_context)

    def set_channel_active(self, index: int, active: bool) -> None:
        self.proxy.setActive(index, active, self.call_context)

    def render_packed(self, z_plane: int, time_point: int) -> list[int]:
        return list(
            self.proxy.renderAsPackedInt(_plane(z_plane, time_point), self.call_context)
        )

    def render_compressed(self, z_plane: int, time_point: int) -> bytes:
        return self.proxy.renderCompressed(
            _plane(z_plane, time_point), self.call_context
        )

    def close(self) -> None:
        self.proxy.close()


@dataclass
class BlitzThumbnailHandle:
    """Thumbnail store proxy bound to one pixel set."""

    proxy: object
    call_context: dict[str, str]

    def get_thumbnail(self, width: int, height: int) -> bytes:
        return self.proxy.getThumbnail(rint(width), rint(height), self.call_context)

    def close(self) -> None:
        self.proxy.close()


@dataclass
class BlitzRepositoryGateway(RepositoryGateway):
    """Repository gateway backed by omero-py.

    ``call_timeout_seconds`` becomes ``Ice.Default.InvocationTimeout`` (a
    deadline on every reply) and ``Ice.Override.ConnectTimeout`` of the
    communicator. Handles acquired with their own ``timeout_seconds`` get
    it through ``ice_invocationTimeout`` on the proxy.
    """

    call_timeout_seconds: float | None = None
    _conn: BlitzGateway | None = field(default=None, init=False, repr=False)

    def connect(
        self, server: str, port: int | None, username: str, password: str
    ) -> Session:
        """Create a session with ``omero.client`` and wrap it in BlitzGateway."""
        client = omero.client(
            host=server,
            port=port or DEFAULT_OMERO_PORT,
            pmap=self._ice_properties(),
        )
        try:
            client.createSession(username, password)
            conn = BlitzGateway(client_obj=client)
            group_id = conn.getEventContext().groupId
        except Exception:
            try:
                client.closeSession()
            except Exception as exc:
                _logger.warning("Failed to close OMERO client: %s", exc)
            raise
        conn.SERVICE_OPTS.setOmeroGroup(str(group_id))
        self._conn = conn
        return Session(
            server=server,
            port=port,
            username=username,
            security_context=SecurityContext(group_id=group_id),
            session_id=client.getSessionId(),
        )

    def disconnect(self) -> None:
        conn = self._require_conn()
        self._conn = None
        conn.close()

    def list_projects(self, ctx: SecurityContext) -> list[ProjectListing]:
        conn = self._bind(ctx)
        listings = []
        for project in conn.getObjects("Project"):
            record = ProjectRecord(
                id=project.getId(),
                name=project.getName() or "",
                description=project.getDescription() or "",
            )
            datasets = tuple(
                DatasetRecord(
                    id=dataset.getId(),
                    name=dataset.getName() or "",
                    description=dataset.getDescription() or "",
                    parent_project_id=record.id,
                )
                for dataset in project.listChildren()
            )
            listings.append(ProjectListing(project=record, datasets=datasets))
        return listings

    def list_images(self, ctx: SecurityContext, dataset_id: int) -> list[ImageRecord]:
        conn = self._bind(ctx)
        return [
            _image_record(image)
            for image in conn.getObjects("Image", opts={"dataset": dataset_id})
        ]

    def get_image(self, ctx: SecurityContext, image_id: int) -> ImageRecord | None:
        conn = self._bind(ctx)
        image = conn.getObject("Image", image_id)
        if image is None:
            return None
        return _image_record(image, archived=image.countFilesetFiles() > 0)

    def get_channel_metadata(self, ctx: SecurityContext, image_id: int) -> list[str]:
        conn = self._bind(ctx)
        image = conn.getObject("Image", image_id)
        if image is None:
            raise LookupError(f"Image {image_id} not found")
        return [channel.getLabel() for channel in image.getChannels(noRE=True)]

    def acquire_rendering_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> BlitzRenderingHandle:
        conn = self._bind(ctx)
        call_context = _call_context(ctx)
        proxy = _with_deadline(conn.c.sf.createRenderingEngine(), timeout_seconds)
        try:
            proxy.lookupPixels(pixels_id, call_context)
        except Exception:
            proxy.close()
            raise
        return BlitzRenderingHandle(
            proxy=proxy, pixels_id=pixels_id, call_context=call_context
        )

    def acquire_thumbnail_handle(
        self,
        ctx: SecurityContext,
        pixels_id: int,
        timeout_seconds: float | None = None,
    ) -> BlitzThumbnailHandle:
        conn = self._bind(ctx)
        call_context = _call_context(ctx)
        proxy = _with_deadline(conn.c.sf.createThumbnailStore(), timeout_seconds)
        try:
            if not proxy.setPixelsId(pixels_id, call_context):
                proxy.resetDefaults(call_context)
                proxy.setPixelsId(pixels_id, call_context)
        except Exception:
            proxy.close()
            raise
        return BlitzThumbnailHandle(proxy=proxy, call_context=call_context)

    def save_object(
        self, ctx: SecurityContext, obj: NewProject | ProjectDatasetLink
    ) -> ProjectRecord | ProjectDatasetLink:
        conn = self._bind(ctx)
        update = conn.getUpdateService()
        if isinstance(obj, NewProject):
            project = ProjectI()
            project.setName(rstring(obj.name))
            project.setDescription(rstring(obj.description))
            saved = update.saveAndReturnObject(project, _call_context(ctx))
            return ProjectRecord(
                id=saved.getId().getValue(),
                name=obj.name,
                description=obj.description,
            )
        if isinstance(obj, ProjectDatasetLink) and isinstance(obj.child, NewDataset):
            dataset = DatasetI()
            dataset.setName(rstring(obj.child.name))
            dataset.setDescription(rstring(obj.child.description))
            link = ProjectDatasetLinkI()
            link.setParent(ProjectI(obj.parent_id, False))
            link.setChild(dataset)
            saved = update.saveAndReturnObject(link, _call_context(ctx))
            dataset_id = saved.getChild().getId().getValue()
            return ProjectDatasetLink(
                parent_id=saved.getParent().getId().getValue(),
                child=ObjectRef(TargetKind.DATASET, dataset_id),
            )
        raise TypeError(f"Cannot save {type(obj).__name__}")

    def attach_annotation(
        self, ctx: SecurityContext, annotation: Annotation, target: ObjectRef
    ) -> int:
        conn = self._bind(ctx)
        map_annotation = MapAnnotationI()
        map_annotation.setNs(rstring(annotation.namespace))
        map_annotation.setMapValue([NamedValue(annotation.key, annotation.value)])
        link = _ANNOTATION_LINK_TYPES[target.kind]()
        link.setParent(_MODEL_TYPES[target.kind](target.id, False))
        link.setChild(map_annotation)
        saved = conn.getUpdateService().saveAndReturnObject(link, _call_context(ctx))
        return saved.getChild().getId().getValue()

    def list_map_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[MapAnnotationRecord]:
        return [
            MapAnnotationRecord(
                id=annotation.getId(),
                namespace=annotation.getNs(),
                values=tuple((key, value) for key, value in annotation.getValue()),
            )
            for annotation in self._annotations(ctx, target)
            if isinstance(annotation, MapAnnotationWrapper)
        ]

    def list_file_annotations(
        self, ctx: SecurityContext, target: ObjectRef
    ) -> list[FileAnnotationRecord]:
        return [
            FileAnnotationRecord(
                id=annotation.getId(),
                namespace=annotation.getNs(),
                file_name=annotation.getFileName(),
                file_size=annotation.getFileSize(),
            )
            for annotation in self._annotations(ctx, target)
            if isinstance(annotation, FileAnnotationWrapper)
        ]

    def _annotations(self, ctx: SecurityContext, target: ObjectRef) -> list[object]:
        conn = self._bind(ctx)
        wrapper = conn.getObject(target.kind.value, target.id)
        if wrapper is None:
            raise LookupError(f"{target.kind.value} {target.id} not found")
        return list(wrapper.listAnnotations())

    def _ice_properties(self) -> dict[str, str]:
        if self.call_timeout_seconds is None:
            return {}
        millis = str(_millis(self.call_timeout_seconds))
        return {
            "Ice.Default.InvocationTimeout": millis,
            "Ice.Override.ConnectTimeout": millis,
        }

    def _bind(self, ctx: SecurityContext) -> BlitzGateway:
        conn = self._require_conn()
        if conn.SERVICE_OPTS.getOmeroGroup() != str(ctx.group_id):
            _logger.debug("Switching call group to %s", ctx.group_id)
            conn.SERVICE_OPTS.setOmeroGroup(str(ctx.group_id))
        return conn

    def _require_conn(self) -> BlitzGateway:
        if self._conn is None:
            raise RuntimeError("BlitzGateway is not connected")
        return self._conn


def _millis(seconds: float) -> int:
    return int(seconds * 1000)


def _with_deadline(proxy: object, timeout_seconds: float | None) -> object:
    if timeout_seconds is None:
        return proxy
    return proxy.ice_invocationTimeout(_millis(timeout_seconds))


def _plane(z_plane: int, time_point: int) -> PlaneDef:
    return PlaneDef(slice=XY, z=z_plane, t=time_point)


def _image_record(image: object, archived: bool | None = None) -> ImageRecord:
    pixels = image.getPrimaryPixels()
    return ImageRecord(
        id=image.getId(),
        name=image.getName() or "",
        description=image.getDescription() or "",
        pixels_id=pixels.getId(),
        size_x=image.getSizeX(),
        size_y=image.getSizeY(),
        size_z=image.getSizeZ(),
        size_t=image.getSizeT(),
        size_c=image.getSizeC(),
        archived=archived,
    )
