"""Temporary files holding the full text of a pending command.

The prompt only shows a truncated, escaped command line. The full text
is written to a file the reviewer can open, so a command cannot hide
part of itself behind terminal control sequences or sheer length.

Files are created on first display and removed when the request is
answered. Both steps are best-effort: a failure is logged and the
review goes on without the file.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

FILE_SUFFIX = "-command.txt"


class CommandFile:
    """Lazily created file with the full command text.

    >>> f = CommandFile("echo hi")
    >>> f.path is None
    True
    >>> f.uri().startswith("file://")
    True
    >>> f.release()
    >>> f.path is None
    True
    """

    def __init__(self, text: str, directory: Optional[str | Path] = None):
        self.text = text
        self.directory = str(directory) if directory is not None else None
        self.path: Optional[Path] = None
        self._lock = threading.Lock()
        # Set after a failed creation or a release; the file is never (re)created then.
        self._closed = False

    def uri(self) -> Optional[str]:
        """file:// URI of the command file, creating it on first call.

        Returns None if the file could not be created or was already
        released.
        """
        with self._lock:
            if self.path is None and not self._closed:
                self._create()
            if self.path is None:
                return None
            return self.path.resolve().as_uri()

    def _create(self) -> None:
        try:
            fd, name = tempfile.mkstemp(suffix=FILE_SUFFIX, dir=self.directory)
        except OSError as exc:
            self._closed = True
            logger.warning("Could not create command file: %s", exc)
            return
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(self.text)
        except OSError as exc:
            logger.warning("Could not write command file %s: %s", name, exc)
        self.path = Path(name)

    def release(self) -> None:
        """Remove the file if it was created. Safe to call more than once."""
        with self._lock:
            path, self.path = self.path, None
            self._closed = True
        if path is None:
            return
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Command file %s already removed", path)
        except OSError as exc:
            logger.warning("Could not remove command file %s: %s", path, exc)
