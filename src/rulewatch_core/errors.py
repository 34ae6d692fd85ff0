"""Exception types raised by rulewatch."""


class RulewatchError(Exception):
    """Base class for rulewatch errors."""


class PatternError(RulewatchError, ValueError):
    """A watch pattern is malformed (empty, unbalanced class, ...)."""


class ConfigError(RulewatchError, ValueError):
    """A rules file could not be parsed or validated."""


class CommandFailedError(RulewatchError):
    """A shell command action exited with a non-zero status."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        super().__init__(f"Command '{command}' exited with status {returncode}")
