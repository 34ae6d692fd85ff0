"""Abstract subscription protocol for filesystem watch implementations."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

ChangeKind = Literal["add", "change", "unlink"]

EventCallback = Callable[[ChangeKind, Path], None]
"""Receives (kind, absolute path) on the event loop thread."""

DEFAULT_SETTLE_SECONDS = 2.0


@dataclass
class SubscriptionConfig:
    """Configuration for one rule's filesystem subscription."""

    roots: tuple[Path, ...]
    """Absolute paths to watch. Directories are watched recursively."""

    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    """How long a file's size must stay unchanged before add/change is emitted."""

    label: str = ""
    """Rule label, for log lines."""

    base: Path | None = None
    """Directory bounding recursive watches of roots that do not exist yet."""


class FileSubscription(Protocol):
    """Protocol for filesystem watch implementations.

    Only events occurring after :meth:`start` are reported; files already
    present at that time produce nothing.
    """

    def start(self) -> None:
        """Start watching."""
        ...

    def close(self) -> None:
        """Stop watching. Safe to call more than once."""
        ...


class SubscriptionFactory(Protocol):
    """Creates a subscription delivering events onto ``loop``."""

    def __call__(
        self,
        config: SubscriptionConfig,
        loop: asyncio.AbstractEventLoop,
        on_event: EventCallback,
    ) -> FileSubscription: ...
