"""Central logging configuration for the command line tools.

Library modules only create module loggers; handlers are installed here, once,
by the CLI or the REPL.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

from .utils import log_level

HANDLER_NAME = "resttest_console"


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            HANDLER_NAME: {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "resttest": {"level": level, "handlers": [HANDLER_NAME], "propagate": False},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure logging for the resttest package once.

    If the package's own handler is already installed, only its level and the
    logger's level are updated, so repeated calls (REPL resets, tests) never
    duplicate output. Other handlers on the logger keep their levels.
    """
    level = (level or log_level()).upper()
    logger = logging.getLogger("resttest")

    for handler in logger.handlers:
        if handler.get_name() == HANDLER_NAME:
            logger.setLevel(level)
            handler.setLevel(level)
            return

    dictConfig(_dict_config(level))
