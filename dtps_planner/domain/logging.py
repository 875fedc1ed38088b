"""Logging for domain code, which must not import infrastructure.

Records go to the ``dtps_planner.domain`` stdlib logger. The application's
logging setup attaches the planner handlers to it; without that setup the
messages follow whatever the host process configured.
"""
from __future__ import annotations

import logging

_logger = logging.getLogger("dtps_planner.domain")


def debug(message: str) -> None:
    _logger.debug(message)


def info(message: str) -> None:
    _logger.info(message)
