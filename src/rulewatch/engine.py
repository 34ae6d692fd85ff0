"""Rule engine: initial pass, live watching and shutdown. Primary embed point."""

import asyncio
import functools
import logging
import os
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from rulewatch_core.config import EngineOptions
from rulewatch_core.cycles import CycleDetector
from rulewatch_core.models import DebounceState, EngineState, ResolvedWatch, WatchRule
from rulewatch_core.notifier import LoggingNotifier, RulewatchNotifier
from rulewatch_core.patterns import PatternResolver
from rulewatch_core.watchers import (
    DEFAULT_SETTLE_SECONDS,
    ChangeKind,
    FileSubscription,
    SubscriptionConfig,
    SubscriptionFactory,
)

from rulewatch.dispatcher import ActionDispatcher
from rulewatch.lifecycle import LifecycleHooks

logger = logging.getLogger(__name__)

PLUGIN_NAME = "RuleEngine"

DEV_SERVER_ENV = "RULEWATCH_SERVE"


def is_dev_server() -> bool:
    """True when the process runs as a dev server (``RULEWATCH_SERVE=true``)."""
    return os.environ.get(DEV_SERVER_ENV, "").lower() == "true"


def _default_subscription_factory() -> SubscriptionFactory:
    from rulewatch.file_watcher import WatchdogSubscription

    return WatchdogSubscription


class RuleEngine:
    """Runs watch rules over a host build lifecycle.

    Lifecycle:
        UNINITIALIZED -> INITIAL_PASS -> WATCHING -> SHUT_DOWN

    Outside dev-server mode only the initial pass runs, then the engine is
    COMPLETED and never subscribes to the filesystem.

    Actions started for live changes are fire-and-forget. Shutdown closes
    the subscriptions and abandons actions still in flight; hosts that want
    to join them can await ``engine.dispatcher.wait_pending()``.
    """

    def __init__(
        self,
        rules: Iterable[WatchRule],
        cwd: str | Path | None = None,
        debug: bool = False,
        ignore_cycles: bool = False,
        dev_server: bool | None = None,
        notifier: RulewatchNotifier | None = None,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        subscription_factory: SubscriptionFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize engine.

        Args:
            rules: Watch rules, processed in this order
            cwd: Directory relative patterns and commands are resolved against
            debug: Log extra lifecycle messages
            ignore_cycles: Disable change-loop detection
            dev_server: Enable live watching (defaults to RULEWATCH_SERVE)
            notifier: Sink for user-facing messages (defaults to logging)
            settle_seconds: Time a file must stay unchanged before it is reported
            subscription_factory: Filesystem watch implementation (defaults to watchdog)
            clock: Monotonic time source used by the debounce gate

        Raises:
            PatternError: If a rule contains a malformed pattern
        """
        self.rules: tuple[WatchRule, ...] = tuple(rules)
        self.resolver = PatternResolver(cwd)
        self.cwd = self.resolver.cwd
        self.debug = debug
        self.dev_server = is_dev_server() if dev_server is None else dev_server
        self.notifier = notifier or LoggingNotifier()
        self.settle_seconds = settle_seconds
        self.subscription_factory = subscription_factory or _default_subscription_factory()
        self.clock = clock

        self.cycle_detector = CycleDetector(self.notifier)
        self.dispatcher = ActionDispatcher(
            self.cwd,
            notifier=self.notifier,
            cycle_detector=self.cycle_detector,
            ignore_cycles=ignore_cycles,
        )

        # Malformed patterns surface here, at setup
        self.watches: tuple[ResolvedWatch, ...] = tuple(self.resolver.resolve_watch(r.files) for r in self.rules)
        self.debounce: dict[int, DebounceState] = {
            index: DebounceState() for index, rule in enumerate(self.rules) if rule.shared_action
        }

        self.subscriptions: list[FileSubscription] = []
        self.state = EngineState.UNINITIALIZED
        self._first_run_handled = False

    @classmethod
    def from_options(cls, options: EngineOptions, **kwargs) -> "RuleEngine":
        """Create an engine from a loaded rules file."""
        return cls(
            options.rules,
            cwd=options.cwd,
            debug=kwargs.pop("debug", options.debug),
            ignore_cycles=kwargs.pop("ignore_cycles", options.ignore_cycles),
            **kwargs,
        )

    # Host integration

    def apply(self, lifecycle: LifecycleHooks) -> None:
        """Tap the host lifecycle hooks.

        The first 'before run' or 'watch run' signal runs the initial pass and,
        in dev-server mode, starts watching. Later signals are ignored.
        """

        async def on_compilation() -> None:
            if self._first_run_handled:
                return
            self._first_run_handled = True
            await self.initial_pass()
            if self.dev_server:
                self.start_watching()

        lifecycle.before_run.tap(PLUGIN_NAME, on_compilation)

        # Build mode runs the first compilation only, never watchers
        if not self.dev_server:
            return

        lifecycle.watch_run.tap(PLUGIN_NAME, on_compilation)
        lifecycle.shutdown.tap(PLUGIN_NAME, self.shutdown)

    # Initial pass

    def initial_targets(self) -> list[tuple[WatchRule, Path]]:
        """Files each first-compilation rule should run for, in rule order."""
        targets: list[tuple[WatchRule, Path]] = []
        for rule in self.rules:
            if not rule.first_compilation:
                continue
            for pattern in rule.files:
                files = self.resolver.expand(pattern)
                if rule.shared_action and files:
                    targets.append((rule, files[0]))
                    break
                targets.extend((rule, f) for f in files)
        return targets

    async def initial_pass(self) -> int:
        """Run every first-compilation rule synchronously and concurrently.

        Returns:
            Number of actions that completed without error
        """
        self.state = EngineState.INITIAL_PASS
        if self.debug:
            self.notifier.info("Running first compilation")

        invocations = [self.dispatcher.run(rule, path, synchronous=True) for rule, path in self.initial_targets()]
        results = await asyncio.gather(*invocations, return_exceptions=True)

        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error during first compilation: {result}")

        if not self.dev_server:
            self.state = EngineState.COMPLETED
        return sum(1 for r in results if r is True)

    # Live watching

    def start_watching(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Subscribe to filesystem events for every rule.

        Idempotent. Must run on (or be given) a running event loop.

        Raises:
            RuntimeError: If the engine was shut down or no loop is running
        """
        if self.state is EngineState.WATCHING:
            return
        if self.state is EngineState.SHUT_DOWN:
            raise RuntimeError("RuleEngine has been shut down")

        loop = loop or asyncio.get_running_loop()
        if not loop.is_running():
            raise RuntimeError("Event loop must be running before start_watching()")

        self.state = EngineState.WATCHING
        for index, (rule, watch) in enumerate(zip(self.rules, self.watches)):
            config = SubscriptionConfig(
                roots=watch.roots,
                settle_seconds=self.settle_seconds,
                label=rule.name or f"rule #{index + 1}",
                base=self.cwd,
            )
            try:
                subscription = self.subscription_factory(config, loop, functools.partial(self._on_change, index))
                subscription.start()
            except Exception as e:
                logger.error(f"Failed to watch {', '.join(map(str, watch.roots))}: {e}")
                self.notifier.error(f"File watcher initialization failed for {config.label}: {e}")
                continue
            self.subscriptions.append(subscription)

        logger.info(f"Started {len(self.subscriptions)} file watcher(s)")

    def _on_change(self, index: int, kind: ChangeKind, path: Path) -> None:
        logger.debug(f"{kind}: {path}")
        self.handle_event(index, path)

    def handle_event(self, index: int, path: str | Path) -> bool:
        """Filter one filesystem event for rule ``index`` and dispatch it.

        Returns:
            True if the rule's action was started
        """
        if self.state is not EngineState.WATCHING:
            return False

        rule = self.rules[index]
        if not self.watches[index].matches(path):
            return False

        debounce = self.debounce.get(index)
        if debounce is not None and not debounce.accept(self.clock()):
            logger.debug(f"Skipping {path}: {rule.display_name} ran less than {debounce.window}s ago")
            return False

        return self.dispatcher.start(rule, self.resolver.absolute(path))

    # Shutdown

    def shutdown(self) -> None:
        """Close every subscription. Safe to call repeatedly."""
        for subscription in self.subscriptions:
            try:
                subscription.close()
            except Exception as e:
                logger.error(f"Error closing file watcher: {e}")
        self.subscriptions.clear()

        if self.state is not EngineState.SHUT_DOWN:
            logger.debug("RuleEngine shut down")
        self.state = EngineState.SHUT_DOWN
