"""
Logging setup.

All modules log through named ``legal_rag.*`` loggers; this configures the
root handler once at application start.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    logging.getLogger("legal_rag").setLevel(level.upper())

    # httpx logs every request at INFO, which drowns the pipeline logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
