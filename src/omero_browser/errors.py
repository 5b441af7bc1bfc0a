"""Typed errors raised by the OMERO browsing client.

Every remote failure is wrapped in one of these with the original exception
chained as ``__cause__``.
"""


class OmeroClientError(RuntimeError):
    """Base class for all client errors."""


class NotConnected(OmeroClientError):
    """No live session exists."""


class AlreadyConnected(OmeroClientError):
    """A session is already open on this client."""


class ServiceUnavailable(OmeroClientError):
    """The server could not be reached or refused the credentials."""


class FetchFailed(OmeroClientError):
    """A hierarchy or listing query failed on the server."""


class UnknownProject(OmeroClientError, LookupError):
    """The project id is not present in the loaded hierarchy."""


class CacheNotLoaded(UnknownProject):
    """The project hierarchy has not been loaded yet."""


class NotFound(OmeroClientError, LookupError):
    """A referenced object does not exist."""


class NotDownloadable(OmeroClientError):
    """The image has no archived original files to download."""


class RenderFailed(OmeroClientError):
    """The rendering engine or thumbnail store failed."""


class DecodeFailed(OmeroClientError):
    """Rendered bytes could not be decoded into a raster."""


class WriteFailed(OmeroClientError):
    """A save or attach operation failed on the server."""
