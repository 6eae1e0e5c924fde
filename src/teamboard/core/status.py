# src/teamboard/core/status.py

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusBoard:
    """
    The single user-visible status slot.

    Holds either an error or a success message, never both.
    """

    error: str | None = None
    success: str | None = None

    def fail(self, message: str) -> None:
        logger.info("status error: %s", message)
        self.error = message
        self.success = None

    def succeed(self, message: str) -> None:
        logger.debug("status ok: %s", message)
        self.success = message
        self.error = None

    def clear(self) -> None:
        self.error = None
        self.success = None

    @property
    def message(self) -> str | None:
        return self.error or self.success
