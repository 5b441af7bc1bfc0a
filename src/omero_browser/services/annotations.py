"""Write operations: new containers and key/value annotations."""

import logging
from dataclasses import dataclass

from omero_browser.domain.models import (
    Annotation,
    NewDataset,
    NewProject,
    ObjectRef,
    ProjectDatasetLink,
    ProjectRecord,
    TargetKind,
)
from omero_browser.errors import WriteFailed
from omero_browser.services.connection import ConnectionManager

_logger = logging.getLogger(__name__)


@dataclass
class AnnotationWriter:
    """Creates projects and datasets and attaches map annotations."""

    connection: ConnectionManager

    def annotate_project(self, project_id: int, key: str, value: str) -> int:
        """Attach one key/value pair to a project and return the annotation id."""
        return self._attach(ObjectRef(TargetKind.PROJECT, project_id), key, value)

    def annotate_dataset(self, dataset_id: int, key: str, value: str) -> int:
        """Attach one key/value pair to a dataset and return the annotation id."""
        return self._attach(ObjectRef(TargetKind.DATASET, dataset_id), key, value)

    def create_project(self, name: str, description: str = "") -> int:
        """Save a new project and return its id."""
        saved = self._save(NewProject(name=name, description=description))
        if not isinstance(saved, ProjectRecord):
            raise WriteFailed(f"Unexpected object returned for project {name!r}")
        _logger.info("Created project %s (%s)", saved.id, name)
        return saved.id

    def create_dataset(self, project_id: int, name: str, description: str = "") -> int:
        """Save a new dataset linked to a project and return the dataset id."""
        link = ProjectDatasetLink(
            parent_id=project_id,
            child=NewDataset(name=name, description=description),
        )
        saved = self._save(link)
        # The server returns the link; the dataset id sits on its child.
        if not isinstance(saved, ProjectDatasetLink) or not isinstance(
            saved.child, ObjectRef
        ):
            raise WriteFailed(f"Unexpected object returned for dataset {name!r}")
        _logger.info(
            "Created dataset %s (%s) in project %s", saved.child.id, name, project_id
        )
        return saved.child.id

    def _attach(self, target: ObjectRef, key: str, value: str) -> int:
        if not key:
            raise ValueError("Annotation key must not be empty")
        ctx = self.connection.current_context()
        annotation = Annotation(key=key, value=value)
        try:
            return self.connection.gateway.attach_annotation(ctx, annotation, target)
        except Exception as exc:
            _logger.warning(
                "Attaching %r to %s %s failed: %s",
                key,
                target.kind.value,
                target.id,
                exc,
            )
            raise WriteFailed(
                f"Could not annotate {target.kind.value} {target.id}"
            ) from exc

    def _save(
        self, obj: NewProject | ProjectDatasetLink
    ) -> ProjectRecord | ProjectDatasetLink:
        ctx = self.connection.current_context()
        try:
            return self.connection.gateway.save_object(ctx, obj)
        except Exception as exc:
            raise WriteFailed(f"Could not save {type(obj).__name__}") from exc
