"""Model/base for a Core controller within the Home Dashboard."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homedash.constants import CONF_LOG_LEVEL, ROOT_LOGGER_NAME, VERBOSE_LOG_LEVEL

if TYPE_CHECKING:
    from homedash.server import HomeDash


class CoreController:
    """Base representation of a Core controller within the Home Dashboard."""

    domain: str  # used as identifier, config section and logger name

    def __init__(self, homedash: HomeDash) -> None:
        """Initialize controller."""
        self.homedash = homedash
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{self.domain}")
        self._apply_log_level()

    async def setup(self) -> None:
        """Async initialize of controller."""

    async def close(self) -> None:
        """Handle logic on server stop."""

    def _apply_log_level(self) -> None:
        """Apply the log level configured for this controller, GLOBAL follows the root."""
        log_level = str(self.homedash.config.get(f"{self.domain}/{CONF_LOG_LEVEL}", "GLOBAL"))
        if log_level.upper() == "GLOBAL":
            self.logger.setLevel(logging.NOTSET)
            return
        level = VERBOSE_LOG_LEVEL if log_level.upper() == "VERBOSE" else log_level.upper()
        self.logger.setLevel(level)
        # a more verbose controller needs the handlers to let its records through
        if logging.getLogger().level > self.logger.level:
            logging.getLogger().setLevel(self.logger.level)
