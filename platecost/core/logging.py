from __future__ import annotations

import logging

from platecost.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Install a single stream handler; repeated app factories must not stack handlers.
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(handler, "_platecost", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._platecost = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    # httpx logs full request URLs at INFO; keep them out of service logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
