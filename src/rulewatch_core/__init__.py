"""rulewatch-core: Rule models, pattern resolution and cycle detection for rulewatch."""

__version__ = "0.1.0"

# Models
from rulewatch_core.models import (
    CHANGED_FILE_ENV,
    CYCLE_DETECTION_THRESHOLD,
    MAX_HASH_HISTORY,
    WATCHER_DEBOUNCE,
    CallbackAction,
    CommandAction,
    DebounceState,
    EngineState,
    HashHistory,
    ResolvedWatch,
    WatchRule,
)

# Building blocks
from rulewatch_core.config import EngineOptions, load_rules_config
from rulewatch_core.cycles import CycleDetector
from rulewatch_core.errors import CommandFailedError, ConfigError, PatternError, RulewatchError
from rulewatch_core.notifier import LoggingNotifier, NoOpNotifier, RulewatchNotifier
from rulewatch_core.patterns import PatternResolver, has_wildcard

__all__ = [
    "__version__",
    # Models
    "WatchRule",
    "CommandAction",
    "CallbackAction",
    "ResolvedWatch",
    "DebounceState",
    "HashHistory",
    "EngineState",
    "MAX_HASH_HISTORY",
    "CYCLE_DETECTION_THRESHOLD",
    "WATCHER_DEBOUNCE",
    "CHANGED_FILE_ENV",
    # Patterns and cycles
    "PatternResolver",
    "has_wildcard",
    "CycleDetector",
    # Notifications
    "RulewatchNotifier",
    "LoggingNotifier",
    "NoOpNotifier",
    # Config
    "EngineOptions",
    "load_rules_config",
    # Errors
    "RulewatchError",
    "PatternError",
    "ConfigError",
    "CommandFailedError",
]
