"""Shared data models for rulewatch."""

from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

MAX_HASH_HISTORY = 5
"""Number of recent content digests kept per file."""

CYCLE_DETECTION_THRESHOLD = 3
"""Occurrences of one digest within the history that flag a change loop."""

WATCHER_DEBOUNCE = 0.1
"""Window (seconds) during which a shared-action rule ignores new triggers."""

CHANGED_FILE_ENV = "CHANGED_FILE"
"""Environment variable carrying the triggering path for command actions."""

ActionCallback = Callable[[str], "Awaitable[object] | object"]


@dataclass(frozen=True)
class CommandAction:
    """Shell command run with the triggering file in CHANGED_FILE."""

    command: str


@dataclass(frozen=True)
class CallbackAction:
    """Python callable invoked with the absolute triggering path."""

    callback: ActionCallback

    @property
    def label(self) -> str:
        return getattr(self.callback, "__qualname__", repr(self.callback))


Action = CommandAction | CallbackAction


@dataclass(frozen=True)
class WatchRule:
    """Declarative watch rule: patterns paired with an action."""

    files: tuple[str, ...]
    """Glob(s) or literal path(s) to watch."""

    action: Action
    """Command line or callback triggered on change."""

    first_compilation: bool = False
    """Run once before the first compilation. Runs in build mode too."""

    shared_action: bool = False
    """When many files of the rule change at once, run only once (with the first file)."""

    name: str | None = None
    """Name of the rule, used for logging."""

    def __post_init__(self) -> None:
        if isinstance(self.files, (str, Path)):
            object.__setattr__(self, "files", (str(self.files),))
        else:
            object.__setattr__(self, "files", tuple(str(f) for f in self.files))
        if not self.files:
            raise ValueError("WatchRule needs at least one file pattern")
        if not isinstance(self.action, (CommandAction, CallbackAction)):
            raise TypeError(
                f"WatchRule action must be CommandAction or CallbackAction, got {type(self.action).__name__}"
            )

    @classmethod
    def create(
        cls,
        files: str | Path | list[str] | tuple[str, ...],
        action: "str | ActionCallback | Action",
        first_compilation: bool = False,
        shared_action: bool = False,
        name: str | None = None,
    ) -> "WatchRule":
        """Build a rule from a bare command string or callable.

        Args:
            files: One pattern or a list of patterns
            action: Shell command, callable, or an already tagged action

        Returns:
            WatchRule with the action wrapped in its tagged variant
        """
        if isinstance(action, str):
            action = CommandAction(action)
        elif not isinstance(action, (CommandAction, CallbackAction)):
            if not callable(action):
                raise TypeError(f"Rule action must be a command string or a callable, got {action!r}")
            action = CallbackAction(action)
        return cls(
            files=files,  # type: ignore[arg-type]
            action=action,
            first_compilation=first_compilation,
            shared_action=shared_action,
            name=name,
        )

    @property
    def display_name(self) -> str:
        """Quoted rule name for log lines, or 'action' when unnamed."""
        return f'"{self.name}"' if self.name else "action"


@dataclass(frozen=True)
class ResolvedWatch:
    """Roots to watch and matchers derived from a rule's patterns."""

    roots: tuple[Path, ...]
    """Deduplicated absolute directories/files to subscribe to, in pattern order."""

    matchers: tuple[Callable[[str | Path], bool], ...]
    """One predicate per pattern; a path is accepted if any returns True."""

    def matches(self, path: str | Path) -> bool:
        return any(m(path) for m in self.matchers)


@dataclass
class DebounceState:
    """Last accepted trigger time of a shared-action rule."""

    window: float = WATCHER_DEBOUNCE
    last_accepted: float | None = None

    def accept(self, now: float) -> bool:
        """Return True and record ``now`` unless still inside the window."""
        if self.last_accepted is not None and now - self.last_accepted < self.window:
            return False
        self.last_accepted = now
        return True


@dataclass
class HashHistory:
    """Bounded sequence of recent content digests for one file."""

    digests: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_HASH_HISTORY))

    def push(self, digest: str) -> int:
        """Append a digest and return how often it now occurs in the window."""
        self.digests.append(digest)
        return self.digests.count(digest)

    def __len__(self) -> int:
        return len(self.digests)


class EngineState(Enum):
    """Lifecycle of a RuleEngine."""

    UNINITIALIZED = "uninitialized"
    INITIAL_PASS = "initial_pass"
    WATCHING = "watching"
    COMPLETED = "completed"
    SHUT_DOWN = "shut_down"
