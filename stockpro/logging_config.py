"""Process-wide logging setup for the API and the CLI jobs."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def configure_logging(level: str = 'INFO') -> None:
    """Attach a single stream handler to the ``stockpro`` logger.

    Calling it more than once only updates the level, so importing the app in
    tests or reloading under uvicorn does not duplicate output.
    """
    global _configured

    logger = logging.getLogger('stockpro')
    logger.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
