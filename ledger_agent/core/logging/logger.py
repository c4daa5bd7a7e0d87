from __future__ import annotations

import logging
from typing import Optional


_LOGGER: Optional[logging.Logger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger, or a child of it when ``name`` is given."""

    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger("ledger_agent")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        _LOGGER = logger
    if name:
        return _LOGGER.getChild(name)
    return _LOGGER
