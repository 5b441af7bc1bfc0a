"""Application configuration."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

DEFAULT_OMERO_PORT = 4064


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    omero_host: str
    omero_port: int | None = None
    omero_username: str
    omero_password: str
    omero_web_url: str | None = None
    thumbnail_edge: int = 96
    call_timeout_seconds: float | None = 60.0
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @field_validator("omero_port", mode="before")
    @classmethod
    def _coerce_port(cls, value: object) -> int | None:
        if value is None or isinstance(value, int):
            return parse_port(value)
        return parse_port(str(value))

    @property
    def web_url(self) -> str:
        """Base URL of the OMERO.web front end used for download links."""
        if self.omero_web_url:
            return self.omero_web_url.rstrip("/")
        return f"https://{self.omero_host}"


def parse_port(raw: str | int | None) -> int | None:
    """Parse a port value, mapping the "use default" sentinels to None."""
    if raw is None:
        return None
    if isinstance(raw, int):
        value = raw
    else:
        cleaned = raw.strip().lower()
        if cleaned in {"", "default"}:
            return None
        if not cleaned.isdigit():
            raise ValueError(f"Invalid port: {raw!r}")
        value = int(cleaned)
    if value < 0:
        raise ValueError(f"Invalid port: {raw!r}")
    return value or None
