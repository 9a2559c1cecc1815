from __future__ import annotations

import logging

LOG_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

_CONFIGURED = False


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging once per process; later calls only adjust the level."""

    global _CONFIGURED
    level = logging.DEBUG if verbose else logging.INFO
    if not _CONFIGURED:
        logging.basicConfig(level=level, format=VERBOSE_FORMAT if verbose else LOG_FORMAT)
        _CONFIGURED = True
    logging.getLogger().setLevel(level)


__all__ = ["configure_logging"]
