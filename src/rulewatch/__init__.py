"""rulewatch: Run actions when files matching declarative watch rules change."""

__version__ = "0.1.0"

# Public API
from rulewatch.dispatcher import ActionDispatcher
from rulewatch.engine import RuleEngine, is_dev_server
from rulewatch.lifecycle import BuildLifecycle
from rulewatch_core.models import CallbackAction, CommandAction, WatchRule

__all__ = [
    "__version__",
    # Primary components
    "RuleEngine",
    "ActionDispatcher",
    "BuildLifecycle",
    "is_dev_server",
    # Rule declaration
    "WatchRule",
    "CommandAction",
    "CallbackAction",
]
