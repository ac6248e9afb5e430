from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``render_api`` logger."""

    package_logger = logging.getLogger("render_api")
    package_logger.setLevel(level.upper())
    if not any(getattr(handler, "_render_api", False) for handler in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._render_api = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
