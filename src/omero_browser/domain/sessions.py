"""Domain models for server sessions."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credentials:
    """Login name and password for one OMERO user."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class SecurityContext:
    """Group scope under which remote operations run."""

    group_id: int


@dataclass(frozen=True)
class Session:
    """Represents an authenticated session on an OMERO server."""

    server: str
    port: int | None
    username: str
    security_context: SecurityContext
    session_id: str
