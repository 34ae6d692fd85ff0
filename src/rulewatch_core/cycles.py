"""Change-loop detection based on rolling content hashes."""

import hashlib
import logging
from pathlib import Path

from rulewatch_core.models import CYCLE_DETECTION_THRESHOLD, HashHistory
from rulewatch_core.notifier import LoggingNotifier, RulewatchNotifier

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def file_digest(path: str | Path) -> str:
    """Return the SHA-256 hex digest of a file's content."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class CycleDetector:
    """Flags files that keep settling on the same content.

    A generated file whose regeneration re-triggers its own rule flips
    between a few contents. Each observed change appends the file's digest
    to a bounded history; when one digest shows up often enough in that
    window a warning is emitted. The action is never blocked.
    """

    def __init__(
        self,
        notifier: RulewatchNotifier | None = None,
        threshold: int = CYCLE_DETECTION_THRESHOLD,
    ):
        self.notifier = notifier or LoggingNotifier()
        self.threshold = threshold
        self._histories: dict[str, HashHistory] = {}

    def history(self, path: str | Path) -> tuple[str, ...]:
        """Digests currently retained for ``path``, oldest first."""
        entry = self._histories.get(str(path))
        return tuple(entry.digests) if entry else ()

    def observe(self, path: str | Path, digest: str) -> bool:
        """Record a digest for ``path`` and warn if it looks like a loop.

        Returns:
            True if the digest now occurs at least ``threshold`` times
        """
        key = str(path)
        entry = self._histories.get(key)
        if entry is None:
            entry = self._histories[key] = HashHistory()

        if entry.push(digest) >= self.threshold:
            self.notifier.warning(f'Possible infinite loop: "{key}" keeps changing')
            return True
        return False

    def check(self, path: str | Path) -> bool:
        """Hash ``path`` and feed the digest to :meth:`observe`.

        Missing files are skipped. Read errors abandon the check.
        """
        path = Path(path)
        try:
            if not path.is_file():
                return False
            digest = file_digest(path)
        except OSError as e:
            logger.debug(f"Skipping cycle check for {path}: {e}")
            return False

        return self.observe(path, digest)
