"""Configuration parsing for rulewatch rule files."""

import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from rulewatch_core.errors import ConfigError
from rulewatch_core.models import ActionCallback, CallbackAction, CommandAction, WatchRule

logger = logging.getLogger(__name__)

_RULE_KEYS = {"name", "files", "action", "callback", "first_compilation", "shared_action"}


@dataclass
class EngineOptions:
    """Options shared by every rule of a rules file."""

    rules: list[WatchRule] = field(default_factory=list)
    cwd: Path = field(default_factory=Path.cwd)
    debug: bool = False
    ignore_cycles: bool = False


def import_callback(target: str) -> ActionCallback:
    """Import a callable from a ``package.module:attribute`` string."""
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(f"Callback must look like 'package.module:function', got {target!r}")

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import callback module {module_name!r}: {e}") from e

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise ConfigError(f"Callback {target!r} not found: {e}") from e

    if not callable(obj):
        raise ConfigError(f"Callback {target!r} is not callable")
    return obj


def parse_rule(raw: dict, index: int) -> WatchRule:
    """Build a WatchRule from one ``[[rule]]`` table.

    Args:
        raw: Parsed TOML table
        index: Position in the file, used in error messages

    Returns:
        Validated WatchRule
    """
    where = f"rule #{index + 1}" + (f" ({raw['name']!r})" if "name" in raw else "")

    unknown = set(raw) - _RULE_KEYS
    if unknown:
        raise ConfigError(f"{where}: unknown key(s) {', '.join(sorted(unknown))}")

    files = raw.get("files")
    if isinstance(files, str):
        files = [files]
    if not files or not all(isinstance(f, str) for f in files):
        raise ConfigError(f"{where}: 'files' must be a string or a non-empty list of strings")

    if ("action" in raw) == ("callback" in raw):
        raise ConfigError(f"{where}: exactly one of 'action' or 'callback' is required")

    if "action" in raw:
        if not isinstance(raw["action"], str) or not raw["action"].strip():
            raise ConfigError(f"{where}: 'action' must be a non-empty command string")
        action = CommandAction(raw["action"])
    else:
        action = CallbackAction(import_callback(raw["callback"]))

    return WatchRule(
        files=tuple(files),
        action=action,
        first_compilation=bool(raw.get("first_compilation", False)),
        shared_action=bool(raw.get("shared_action", False)),
        name=raw.get("name"),
    )


def load_rules_config(path: str | Path) -> EngineOptions:
    """Load watch rules from a TOML file.

    Args:
        path: Path to TOML rules file

    Returns:
        EngineOptions with cwd resolved relative to the file
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Rules file not found: {path}\nRun 'rulewatch --init' to create a starter rules file."
        )

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse rules file {path}: {e}") from e

    rules = [parse_rule(r, i) for i, r in enumerate(raw.get("rule", []))]
    if not rules:
        logger.warning(f"No [[rule]] entries found in {path}")

    cwd = (path.parent / raw.get("cwd", ".")).resolve()

    return EngineOptions(
        rules=rules,
        cwd=cwd,
        debug=bool(raw.get("debug", False)),
        ignore_cycles=bool(raw.get("ignore_cycles", False)),
    )
