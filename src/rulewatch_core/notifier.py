"""Pluggable notification protocol for rulewatch.

The host build tool owns the log sink. The engine reports user-facing lines
(actions started, action failures, change-loop warnings) through a notifier
so a host can route them into its own infrastructure logger.
"""

import logging
from typing import Protocol

_logger = logging.getLogger("rulewatch")


class RulewatchNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent notifier, for hosts that do not want any output."""

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass


class LoggingNotifier:
    """Default implementation forwarding to the ``rulewatch`` logger."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or _logger

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)
