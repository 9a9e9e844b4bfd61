"""Central logging configuration for the library."""
from __future__ import annotations

import logging
import os
from typing import Optional

_DEFAULT_LEVEL = logging.INFO
_LEVEL_ENV = "DOCBUILDER_LOG_LEVEL"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger with default configuration applied."""
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        level = logging.getLevelName(os.environ.get(_LEVEL_ENV, "").upper() or _DEFAULT_LEVEL)
        if not isinstance(level, int):
            level = _DEFAULT_LEVEL
        logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return logger
