"""Dependency container wiring for the client."""

from collections.abc import Callable
from dataclasses import dataclass

from omero_browser.adapters.blitz_gateway import BlitzRepositoryGateway
from omero_browser.app_logging import configure_logging
from omero_browser.client import ImageClient
from omero_browser.config import Settings
from omero_browser.services.connection import RepositoryGateway


@dataclass
class AppContainer:
    """Holds the configured client and its gateway."""

    settings: Settings
    gateway: RepositoryGateway
    client: ImageClient
    close_resources: Callable[[], None]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container; does not connect."""
    resolved_settings = settings or Settings()
    configure_logging(resolved_settings.log_level)
    gateway = BlitzRepositoryGateway(
        call_timeout_seconds=resolved_settings.call_timeout_seconds
    )
    client = ImageClient.create(gateway, resolved_settings)

    def close_resources() -> None:
        if client.is_connected:
            client.disconnect()

    return AppContainer(
        settings=resolved_settings,
        gateway=gateway,
        client=client,
        close_resources=close_resources,
    )
