"""Glob and literal pattern resolution for watch rules.

A pattern is either a literal path (``config/app.json``) or a glob
(``src/**/*.gen.ts``). Globs are watched at their "glob parent", the
deepest leading directory without wildcards, so files created later still
produce events. Literal patterns are watched at their own path.
"""

import logging
import os
import posixpath
import re
from collections.abc import Callable, Iterable
from pathlib import Path

from rulewatch_core.errors import PatternError
from rulewatch_core.models import ResolvedWatch

logger = logging.getLogger(__name__)

_MAGIC_CHARS = re.compile(r"[*?\[]")
_BRACE_GROUP = re.compile(r"\{[^{}]*,[^{}]*\}")

Matcher = Callable[[str | Path], bool]


def has_wildcard(pattern: str) -> bool:
    """Return True if the pattern contains glob metacharacters or a brace group."""
    return bool(_MAGIC_CHARS.search(pattern) or _BRACE_GROUP.search(pattern))


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternation into plain patterns, innermost group first."""
    match = _BRACE_GROUP.search(pattern)
    if not match:
        return [pattern]

    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for alternative in match.group()[1:-1].split(","):
        for candidate in expand_braces(head + alternative + tail):
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def _static_prefix(pattern: str) -> str:
    static: list[str] = []
    for segment in pattern.split("/")[:-1]:
        if has_wildcard(segment):
            break
        static.append(segment)

    if not static:
        return "."
    if static == [""]:
        return "/"
    return "/".join(static)


def glob_parent(pattern: str) -> str:
    """Return the leading part of a glob that contains no wildcard.

    Brace groups are expanded first, so alternatives spanning directories
    share their common ancestor.

    Examples:
        ``src/*.ts`` -> ``src``, ``**/*.py`` -> ``.``, ``/abs/a/*`` -> ``/abs/a``,
        ``{src,lib/x}/*.ts`` -> ``.``
    """
    parents = {_static_prefix(alternative) for alternative in expand_braces(pattern)}
    if len(parents) == 1:
        return parents.pop()
    try:
        common = posixpath.commonpath(sorted(parents))
    except ValueError:
        raise PatternError(f"Pattern mixes absolute and relative alternatives: {pattern!r}") from None
    return common or "."


def _translate_segment(segment: str, pattern: str) -> str:
    """Translate one path segment (no ``/``) of a glob into a regex fragment."""
    out: list[str] = []
    i, n = 0, len(segment)
    while i < n:
        ch = segment[i]
        i += 1
        if ch == "*":
            # Collapse runs of stars inside a segment
            while i < n and segment[i] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            j = i
            if j < n and segment[j] in "!^":
                j += 1
            if j < n and segment[j] == "]":
                j += 1
            while j < n and segment[j] != "]":
                j += 1
            if j >= n:
                raise PatternError(f"Unbalanced '[' in pattern: {pattern!r}")
            body = segment[i:j].replace("\\", "\\\\")
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = j + 1
        elif ch == "\\" and i < n:
            out.append(re.escape(segment[i]))
            i += 1
        else:
            out.append(re.escape(ch))
    return "".join(out)


def translate(pattern: str) -> str:
    """Translate a brace-free glob into a full-match regular expression.

    ``*`` and ``?`` stay inside one path segment, a ``**`` segment matches
    zero or more directories. Leading dots are not special.
    """
    segments = pattern.split("/")
    parts: list[str] = []
    last = len(segments) - 1
    for index, segment in enumerate(segments):
        if segment == "**":
            parts.append(".*" if index == last else "(?:[^/]*/)*")
            continue
        parts.append(_translate_segment(segment, pattern))
        if index != last:
            parts.append("/")
    return "".join(parts)


class PatternResolver:
    """Turns watch patterns into watch roots, matchers and file lists.

    All relative patterns and candidate paths are resolved against ``cwd``.
    """

    def __init__(self, cwd: str | Path | None = None):
        self.cwd = Path(os.path.abspath(cwd if cwd is not None else Path.cwd()))

    def absolute(self, path: str | Path) -> Path:
        """Resolve a path against cwd without following symlinks."""
        return Path(os.path.abspath(os.path.join(self.cwd, os.fspath(path))))

    @staticmethod
    def _validate(pattern: str) -> None:
        if not isinstance(pattern, str) or not pattern.strip():
            raise PatternError(f"Watch pattern must be a non-empty string, got {pattern!r}")

    def has_wildcard(self, pattern: str) -> bool:
        return has_wildcard(pattern)

    def watch_root_of(self, pattern: str) -> Path:
        """Return the absolute path to subscribe to for ``pattern``."""
        self._validate(pattern)
        if not has_wildcard(pattern):
            return self.absolute(pattern)
        return self.absolute(glob_parent(pattern.replace(os.sep, "/")))

    def _compile(self, pattern: str, ignore_case: bool) -> re.Pattern[str]:
        self._validate(pattern)
        pattern = posixpath.normpath(pattern.replace(os.sep, "/"))

        # The cwd prefix is matched literally, never as a glob
        prefix = ""
        if not posixpath.isabs(pattern):
            base = self.cwd.as_posix()
            while pattern == ".." or pattern.startswith("../"):
                base = posixpath.dirname(base)
                pattern = pattern[3:]
            prefix = re.escape(base.rstrip("/") + "/")

        alternatives = [translate(p) for p in expand_braces(pattern)]
        flags = re.IGNORECASE if ignore_case else 0
        return re.compile(prefix + "(?:" + "|".join(alternatives) + r")\Z", flags)

    def matcher_for(self, pattern: str) -> Matcher:
        """Return a predicate accepting paths that match ``pattern``.

        Wildcard patterns match case-insensitively and include dotfiles.
        Literal patterns compare both sides as absolute paths.
        """
        self._validate(pattern)
        if not has_wildcard(pattern):
            target = self.absolute(pattern)
            return lambda path: self.absolute(path) == target

        regex = self._compile(pattern, ignore_case=True)
        return lambda path: regex.match(self.absolute(path).as_posix()) is not None

    def expand(self, pattern: str) -> list[Path]:
        """List the files currently matching ``pattern``.

        A literal pattern always yields its own absolute path, whether or not
        the file exists. A glob yields existing non-directory files only; each
        brace alternative is walked from its own glob parent.
        """
        self._validate(pattern)
        if not has_wildcard(pattern):
            return [self.absolute(pattern)]

        found: set[Path] = set()
        for alternative in expand_braces(pattern.replace(os.sep, "/")):
            found.update(self._walk(alternative))

        logger.debug(f"Pattern {pattern!r} expanded to {len(found)} file(s)")
        return sorted(found)

    def _walk(self, pattern: str) -> set[Path]:
        """Existing files matching a brace-free ``pattern``."""
        if not has_wildcard(pattern):
            candidate = self.absolute(pattern)
            return {candidate} if candidate.is_file() else set()

        parent = glob_parent(pattern)
        root = self.absolute(parent)
        if not root.is_dir():
            return set()

        regex = self._compile(pattern, ignore_case=False)
        max_depth = None
        if "**" not in pattern:
            # Number of segments below the glob parent
            rest = pattern if parent == "." else pattern[len(parent) :]
            max_depth = len([s for s in rest.split("/") if s not in ("", ".")])

        found: set[Path] = set()
        for dirpath, dirnames, filenames in os.walk(root):
            depth = len(Path(dirpath).relative_to(root).parts)
            if max_depth is not None and depth + 1 >= max_depth:
                dirnames[:] = []
            for filename in filenames:
                candidate = Path(dirpath) / filename
                if regex.match(candidate.as_posix()) and not candidate.is_dir():
                    found.add(candidate)
        return found

    def resolve_watch(self, patterns: Iterable[str]) -> ResolvedWatch:
        """Derive deduplicated watch roots and one matcher per pattern."""
        roots: list[Path] = []
        matchers: list[Matcher] = []
        for pattern in patterns:
            root = self.watch_root_of(pattern)
            if root not in roots:
                roots.append(root)
            matchers.append(self.matcher_for(pattern))
        return ResolvedWatch(roots=tuple(roots), matchers=tuple(matchers))
