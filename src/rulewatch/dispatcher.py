"""Action execution for triggered watch rules."""

import asyncio
import inspect
import logging
import os
import subprocess
from pathlib import Path

from rulewatch_core.cycles import CycleDetector
from rulewatch_core.errors import CommandFailedError
from rulewatch_core.models import CHANGED_FILE_ENV, CallbackAction, CommandAction, WatchRule
from rulewatch_core.notifier import LoggingNotifier, RulewatchNotifier

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Runs a rule's action for a triggered file.

    Two modes:
    - synchronous (:meth:`run` with ``synchronous=True``): the command or
      callback is awaited until it finishes. Used by the initial pass.
    - asynchronous (:meth:`start`): the action is started and not awaited.
      Used for live changes.

    Errors never propagate out of the dispatcher; they are reported through
    the notifier with the triggering path and the rule name.
    """

    def __init__(
        self,
        cwd: str | Path,
        notifier: RulewatchNotifier | None = None,
        cycle_detector: CycleDetector | None = None,
        ignore_cycles: bool = False,
    ):
        """Initialize dispatcher.

        Args:
            cwd: Working directory for shell commands
            notifier: Sink for user-facing messages
            cycle_detector: Shared detector; a new one is created if omitted
            ignore_cycles: Disable cycle detection altogether
        """
        self.cwd = Path(cwd)
        self.notifier = notifier or LoggingNotifier()
        self.cycle_detector = cycle_detector or CycleDetector(self.notifier)
        self.ignore_cycles = ignore_cycles
        self.pending: set[asyncio.Future] = set()

    def _environment(self, path: str | Path) -> dict[str, str]:
        return {**os.environ, CHANGED_FILE_ENV: str(path)}

    def _before_dispatch(self, rule: WatchRule, path: str | Path) -> None:
        self.notifier.info(f"{path} changed, running {rule.display_name}")
        if self.ignore_cycles:
            return
        try:
            self.cycle_detector.check(path)
        except Exception as e:
            # Detection is advisory; the action still runs
            logger.warning(f"Cycle check failed for {path}: {e}")

    def _report_failure(self, rule: WatchRule, path: str | Path, error: BaseException) -> None:
        self.notifier.error(f'Action failed for "{path}" ({rule.name or "unnamed rule"}): {error}')

    async def run(self, rule: WatchRule, path: str | Path, synchronous: bool = False) -> bool:
        """Run the rule's action for ``path``.

        Args:
            rule: Triggered rule
            path: Absolute path of the triggering file
            synchronous: Wait for the command/callback to finish

        Returns:
            True if the action ran (or, asynchronously, started) without error
        """
        if not synchronous:
            return self.start(rule, path)

        self._before_dispatch(rule, path)
        try:
            if isinstance(rule.action, CommandAction):
                await self._run_command(rule.action, path)
            else:
                result = rule.action.callback(str(path))
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            self._report_failure(rule, path, e)
            return False
        return True

    def start(self, rule: WatchRule, path: str | Path) -> bool:
        """Start the rule's action for ``path`` without waiting for it.

        Returns:
            False if the action failed to start
        """
        self._before_dispatch(rule, path)
        try:
            if isinstance(rule.action, CommandAction):
                process = subprocess.Popen(
                    rule.action.command,
                    shell=True,
                    cwd=self.cwd,
                    env=self._environment(path),
                )
                logger.debug(f"Started '{rule.action.command}' (pid {process.pid})")
            else:
                self._start_callback(rule, rule.action, path)
        except Exception as e:
            self._report_failure(rule, path, e)
            return False
        return True

    async def _run_command(self, action: CommandAction, path: str | Path) -> None:
        process = await asyncio.create_subprocess_shell(
            action.command,
            cwd=self.cwd,
            env=self._environment(path),
        )
        returncode = await process.wait()
        if returncode != 0:
            raise CommandFailedError(action.command, returncode)

    def _start_callback(self, rule: WatchRule, action: CallbackAction, path: str | Path) -> None:
        result = action.callback(str(path))
        if not inspect.isawaitable(result):
            return

        future = asyncio.ensure_future(result)
        self.pending.add(future)

        def settled(done: asyncio.Future) -> None:
            self.pending.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                self._report_failure(rule, path, error)

        future.add_done_callback(settled)

    async def wait_pending(self) -> None:
        """Wait for every fire-and-forget callback started so far to settle."""
        while self.pending:
            await asyncio.gather(*list(self.pending), return_exceptions=True)
