"""Minimal build-tool lifecycle that a RuleEngine can be applied to.

A real build tool exposes its own hooks; anything with ``before_run``,
``watch_run`` and ``shutdown`` attributes offering ``tap(name, fn)`` can be
passed to :meth:`rulewatch.engine.RuleEngine.apply`. This module provides
such a surface for the CLI and for embedding.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class Hook:
    """Ordered list of named callbacks fired together."""

    def __init__(self, name: str):
        self.name = name
        self.taps: list[tuple[str, Callable[[], object]]] = []

    def tap(self, name: str, fn: Callable[[], object]) -> None:
        """Register a callback; it may return an awaitable."""
        self.taps.append((name, fn))

    async def call_async(self) -> None:
        """Fire every tap in order, awaiting each awaitable result."""
        for tap_name, fn in self.taps:
            logger.debug(f"{self.name}: running '{tap_name}'")
            result = fn()
            if inspect.isawaitable(result):
                await result

    def call(self) -> None:
        """Fire every tap in order without awaiting anything."""
        for tap_name, fn in self.taps:
            logger.debug(f"{self.name}: running '{tap_name}'")
            fn()


class LifecycleHooks(Protocol):
    """What RuleEngine.apply() needs from a host."""

    before_run: Hook
    watch_run: Hook
    shutdown: Hook


class BuildLifecycle:
    """Host lifecycle: first run, rebuilds and shutdown.

    Usage:
        lifecycle = BuildLifecycle()
        engine.apply(lifecycle)
        await lifecycle.run()       # before first build
        await lifecycle.rebuild()   # before each rebuild (dev server)
        lifecycle.close()           # on shutdown
    """

    def __init__(self) -> None:
        self.before_run = Hook("before_run")
        self.watch_run = Hook("watch_run")
        self.shutdown = Hook("shutdown")
        self._closed = False

    async def run(self) -> None:
        """Signal 'before first run' and wait for every tap."""
        await self.before_run.call_async()

    async def rebuild(self) -> None:
        """Signal 'before each subsequent run' and wait for every tap."""
        await self.watch_run.call_async()

    def close(self) -> None:
        """Signal shutdown once. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self.shutdown.call()
