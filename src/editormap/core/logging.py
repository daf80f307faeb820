"""
Logging configuration.

The packaged `editormap/config/logging.yaml` is applied with `dictConfig`; the level
comes from settings (`app.log_level`, env `EDITORMAP_LOG_LEVEL`) unless the caller
passes one explicitly (the CLI does for `--verbose`).
"""

from __future__ import annotations

import copy
import logging.config

from editormap.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Configure the Python logging system from packaged YAML config + settings."""
    # The cached dict is shared, so mutate a copy.
    config = copy.deepcopy(get_logging_config())
    level = (level or get_settings().app.log_level).upper()

    config.setdefault("root", {})["level"] = level
    for logger_cfg in config.get("loggers", {}).values():
        if isinstance(logger_cfg, dict):
            logger_cfg["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)
