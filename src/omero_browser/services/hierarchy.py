"""In-memory cache of the project -> dataset hierarchy."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from omero_browser.domain.models import DatasetRecord, ProjectRecord
from omero_browser.errors import CacheNotLoaded, FetchFailed, UnknownProject
from omero_browser.services.connection import ConnectionManager

_logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    """Whether the hierarchy has been fetched."""

    UNLOADED = "unloaded"
    LOADED = "loaded"


@dataclass
class HierarchyCache:
    """Project and dataset snapshot populated by one full fetch."""

    connection: ConnectionManager
    state: CacheState = field(default=CacheState.UNLOADED, init=False)
    _projects: dict[int, ProjectRecord] = field(default_factory=dict, init=False)
    _datasets: dict[int, frozenset[DatasetRecord]] = field(
        default_factory=dict, init=False
    )

    def load_project_hierarchy(self) -> dict[int, str]:
        """Fetch all projects and datasets, replacing the cache wholesale.

        On failure the previous contents are kept.
        """
        ctx = self.connection.current_context()
        try:
            listings = self.connection.gateway.list_projects(ctx)
        except Exception as exc:
            _logger.warning("Project hierarchy fetch failed: %s", exc)
            raise FetchFailed("Could not pull data from the omero server.") from exc

        projects: dict[int, ProjectRecord] = {}
        datasets: dict[int, frozenset[DatasetRecord]] = {}
        for listing in listings:
            project = listing.project
            projects[project.id] = project
            datasets[project.id] = frozenset(
                _owned_by(dataset, project.id) for dataset in listing.datasets
            )

        self._projects = projects
        self._datasets = datasets
        self.state = CacheState.LOADED
        _logger.info(
            "Loaded %s projects with %s datasets",
            len(projects),
            sum(len(members) for members in datasets.values()),
        )
        return {project_id: project.name for project_id, project in projects.items()}

    @property
    def is_loaded(self) -> bool:
        return self.state is CacheState.LOADED

    @property
    def project_map(self) -> Mapping[int, str]:
        """Read-only project id -> name view of the last load."""
        self._require_loaded()
        return MappingProxyType(
            {project_id: project.name for project_id, project in self._projects.items()}
        )

    @property
    def dataset_map(self) -> Mapping[int, frozenset[DatasetRecord]]:
        """Read-only project id -> datasets view of the last load."""
        self._require_loaded()
        return MappingProxyType(dict(self._datasets))

    def datasets_for(self, project_id: int) -> frozenset[DatasetRecord]:
        """Return the cached datasets of a project."""
        self._require_loaded()
        try:
            return self._datasets[project_id]
        except KeyError:
            raise UnknownProject(f"Project {project_id} is not loaded") from None

    def list_datasets(self, project_id: int) -> dict[int, dict[str, str]]:
        """Return dataset id -> {"name", "desc"} for a cached project."""
        return {
            dataset.id: {"name": dataset.name, "desc": dataset.description}
            for dataset in self.datasets_for(project_id)
        }

    def project_info(self, project_id: int) -> dict[str, str]:
        """Return {"name", "desc"} of a cached project."""
        self._require_loaded()
        project = self._projects.get(project_id)
        if project is None:
            raise UnknownProject(f"Project {project_id} is not loaded")
        return {"name": project.name, "desc": project.description}

    def _require_loaded(self) -> None:
        if self.state is CacheState.UNLOADED:
            raise CacheNotLoaded(
                "Project hierarchy not loaded; call load_project_hierarchy() first"
            )


def _owned_by(dataset: DatasetRecord, project_id: int) -> DatasetRecord:
    """Pin a dataset to the project it was listed under."""
    if dataset.parent_project_id == project_id:
        return dataset
    return DatasetRecord(
        id=dataset.id,
        name=dataset.name,
        description=dataset.description,
        parent_project_id=project_id,
    )
