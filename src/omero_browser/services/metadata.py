"""Metadata queries for images and annotations."""

import logging
from dataclasses import dataclass, replace

from omero_browser.domain.models import (
    FileAnnotationRecord,
    ImageRecord,
    MapAnnotationRecord,
    ObjectRef,
)
from omero_browser.errors import FetchFailed, NotDownloadable, NotFound
from omero_browser.services.connection import ConnectionManager

_logger = logging.getLogger(__name__)


@dataclass
class MetadataReader:
    """Stateless read queries against the connected server."""

    connection: ConnectionManager
    web_url: str

    def images_for_dataset(self, dataset_id: int) -> dict[int, str]:
        """Return image id -> name for every image in a dataset."""
        return {image.id: image.name for image in self._list_images(dataset_id)}

    def find_image(self, dataset_id: int, image_id: int) -> ImageRecord:
        """Return the first image in the dataset listing with a matching id."""
        for image in self._list_images(dataset_id):
            if image.id == image_id:
                return image
        raise NotFound(f"Image {image_id} not found in dataset {dataset_id}")

    def image_info(self, dataset_id: int, image_id: int) -> ImageRecord:
        """Return an image record with its channel names filled in."""
        image = self.find_image(dataset_id, image_id)
        ctx = self.connection.current_context()
        try:
            channel_names = self.connection.gateway.get_channel_metadata(ctx, image_id)
        except Exception as exc:
            _logger.warning("Channel metadata fetch failed for %s: %s", image_id, exc)
            raise FetchFailed(
                f"Could not load channel metadata for image {image_id}"
            ) from exc
        return replace(image, channel_names=tuple(channel_names))

    def image_summary(self, dataset_id: int, image_id: int) -> dict[str, str]:
        """Return the display strings shown for an image."""
        image = self.image_info(dataset_id, image_id)
        return {
            "name": image.name,
            "desc": image.description,
            "size": image.size_summary,
            "tps": str(image.size_t),
            "channels": image.channel_summary,
            "channel_count": str(image.size_c),
        }

    def map_annotations(self, target: ObjectRef) -> list[MapAnnotationRecord]:
        """Return key/value annotations linked to a project, dataset or image."""
        ctx = self.connection.current_context()
        try:
            return self.connection.gateway.list_map_annotations(ctx, target)
        except Exception as exc:
            raise FetchFailed(
                f"Could not load map annotations for {target.kind.value} {target.id}"
            ) from exc

    def file_annotations(self, target: ObjectRef) -> list[FileAnnotationRecord]:
        """Return file attachments linked to a project, dataset or image."""
        ctx = self.connection.current_context()
        try:
            return self.connection.gateway.list_file_annotations(ctx, target)
        except Exception as exc:
            raise FetchFailed(
                f"Could not load file annotations for {target.kind.value} {target.id}"
            ) from exc

    def get_image(self, image_id: int) -> ImageRecord:
        """Return a single image by id."""
        ctx = self.connection.current_context()
        try:
            image = self.connection.gateway.get_image(ctx, image_id)
        except Exception as exc:
            raise FetchFailed(f"Could not load image {image_id}") from exc
        if image is None:
            raise NotFound(f"Image {image_id} not found")
        return image

    def image_download_link(self, image_id: int) -> str:
        """Build the archived-file download URL of an imported image."""
        image = self.get_image(image_id)
        if not image.archived:
            raise NotDownloadable(
                "No image format given. Image is not available for download."
            )
        return f"{self.web_url}/omero/webgateway/archived_files/download/{image_id}/"

    def annotation_file_download_link(self, annotation_id: int) -> str:
        """Build the download URL of a file annotation without checking it."""
        return f"{self.web_url}/omero/webclient/annotation/{annotation_id}"

    def _list_images(self, dataset_id: int) -> list[ImageRecord]:
        ctx = self.connection.current_context()
        try:
            return self.connection.gateway.list_images(ctx, dataset_id)
        except Exception as exc:
            _logger.warning("Image listing failed for dataset %s: %s", dataset_id, exc)
            raise FetchFailed(
                f"Could not list images of dataset {dataset_id}"
            ) from exc
