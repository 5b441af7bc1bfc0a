"""Logging configuration helpers."""

import logging


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure client logging with a single stream handler.

    Called by ``build_container``; embedders wiring ``ImageClient`` by hand
    call it themselves or configure the ``omero_browser`` logger.
    """
    logger = logging.getLogger("omero_browser")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
