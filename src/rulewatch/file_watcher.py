"""Filesystem subscription implementation using watchdog."""

import asyncio
import logging
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from rulewatch_core.watchers import ChangeKind, EventCallback, FileSubscription, SubscriptionConfig

logger = logging.getLogger(__name__)


def _nearest_existing_dir(path: Path) -> Path:
    for candidate in (path, *path.parents):
        if candidate.is_dir():
            return candidate
    return Path(path.anchor or "/")


def _within(path: Path, base: Path | None) -> bool:
    return base is not None and (path == base or base in path.parents)


def schedule_targets(roots: tuple[Path, ...], base: Path | None = None) -> list[tuple[Path, bool]]:
    """Map watch roots to ``(directory, recursive)`` pairs watchdog can observe.

    Existing directories are watched recursively. An existing file is
    watched through its parent directory, non-recursively. A root that does
    not exist yet is watched from its nearest existing ancestor so its
    creation is seen: recursively when that ancestor lies inside ``base``,
    otherwise one level deep until the missing directories appear.
    """
    targets: list[tuple[Path, bool]] = []
    for root in roots:
        if root.is_dir():
            target = (root, True)
        elif root.is_file():
            target = (root.parent, False)
        else:
            ancestor = _nearest_existing_dir(root)
            target = (ancestor, _within(ancestor, base))
        if target not in targets:
            targets.append(target)

    # Drop targets already covered by a recursive watch on an ancestor
    return [
        (directory, recursive)
        for directory, recursive in targets
        if not any(
            other_recursive
            and (other, other_recursive) != (directory, recursive)
            and (other == directory or other in directory.parents)
            for other, other_recursive in targets
        )
    ]


class _SubscriptionHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(self, subscription: "WatchdogSubscription"):
        self.subscription = subscription

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.subscription.post_directory_created()
        else:
            self.subscription.post("add", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("change", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("unlink", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("unlink", event.src_path)
            self.subscription.post("add", event.dest_path)


class WatchdogSubscription(FileSubscription):
    """Watches a rule's roots and reports settled add/change/unlink events.

    Add and change events are held back until the file size has stayed the
    same for ``settle_seconds``; further events for the same path restart
    the wait. Unlink events are delivered immediately.
    """

    def __init__(
        self,
        config: SubscriptionConfig,
        loop: asyncio.AbstractEventLoop,
        on_event: EventCallback,
    ):
        """Initialize subscription.

        Args:
            config: Roots and settle threshold
            loop: Event loop that receives the events
            on_event: Called on the loop thread with (kind, absolute path)
        """
        self.config = config
        self.loop = loop
        self.on_event = on_event
        self.observer = Observer()
        self._pending: dict[Path, tuple[ChangeKind, int | None, asyncio.TimerHandle]] = {}
        self._handler = _SubscriptionHandler(self)
        self._scheduled: set[tuple[Path, bool]] = set()
        self._awaiting_roots = False
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Schedule every root on the observer and start it."""
        if self._started or self._closed:
            return

        self._schedule()
        self.observer.start()
        self._started = True

    def _schedule(self) -> None:
        for directory, recursive in schedule_targets(self.config.roots, self.config.base):
            if any(
                (other, other_recursive) == (directory, recursive)
                or (other_recursive and (other == directory or other in directory.parents))
                for other, other_recursive in self._scheduled
            ):
                continue
            self.observer.schedule(self._handler, str(directory), recursive=recursive)
            self._scheduled.add((directory, recursive))
            logger.debug(f"Watching {directory} (recursive={recursive}) for {self.config.label or 'rule'}")
        self._awaiting_roots = any(not root.exists() for root in self.config.roots)

    def close(self) -> None:
        """Stop the observer and drop events still waiting to settle."""
        if self._closed:
            return
        self._closed = True

        for _, _, handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
        logger.debug(f"Closed subscription for {self.config.label or 'rule'}")

    def post(self, kind: ChangeKind, src_path: str | bytes) -> None:
        """Hand an event from the observer thread over to the event loop."""
        if self._closed:
            return
        if isinstance(src_path, bytes):
            src_path = src_path.decode()
        try:
            self.loop.call_soon_threadsafe(self._receive, kind, Path(src_path))
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped {kind} event for {src_path}: event loop closed")

    def post_directory_created(self) -> None:
        """Re-check missing roots from the observer thread once a directory appears."""
        if self._closed or not self._awaiting_roots:
            return
        try:
            self.loop.call_soon_threadsafe(self._reschedule)
        except RuntimeError:
            logger.debug("Dropped reschedule: event loop closed")

    def _reschedule(self) -> None:
        if self._closed:
            return
        try:
            self._schedule()
        except OSError as e:
            logger.warning(f"Could not extend watch for {self.config.label or 'rule'}: {e}")

    @staticmethod
    def _size(path: Path) -> int | None:
        try:
            return path.stat().st_size
        except OSError:
            return None

    def _receive(self, kind: ChangeKind, path: Path) -> None:
        if self._closed:
            return

        previous = self._pending.pop(path, None)
        if previous is not None:
            previous[2].cancel()

        if kind == "unlink":
            self.on_event(kind, path)
            return

        # An add followed by writes is still an add
        if previous is not None and previous[0] == "add":
            kind = "add"
        self._wait_for_settle(kind, path, self._size(path))

    def _wait_for_settle(self, kind: ChangeKind, path: Path, size: int | None) -> None:
        handle = self.loop.call_later(self.config.settle_seconds, self._settle, path)
        self._pending[path] = (kind, size, handle)

    def _settle(self, path: Path) -> None:
        entry = self._pending.pop(path, None)
        if entry is None or self._closed:
            return

        kind, size, _ = entry
        current = self._size(path)
        if current is None:
            # Gone before settling; the unlink event reports it
            return
        if current != size:
            self._wait_for_settle(kind, path, current)
            return

        self.on_event(kind, path)
