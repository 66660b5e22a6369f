"""Filesystem watcher that wakes the publisher's watch loop early."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

# Directories and patterns to ignore when watching
_IGNORE_PARTS = {".git", "__pycache__", "node_modules"}


def _should_ignore(path: str, ignored: set[Path]) -> bool:
    """Return True for ignored directory components or paths under output dirs."""
    p = Path(path)
    if any(part in _IGNORE_PARTS for part in p.parts):
        return True
    return any(p == d or d in p.parents for d in ignored)


class _DebouncedHandler(FileSystemEventHandler):
    """Drops repeat events for a path inside the debounce window."""

    def __init__(
        self,
        debounce_seconds: float,
        changed: threading.Event,
        ignored: set[Path],
        callback: Callable[[str, str], None] | None = None,
    ) -> None:
        super().__init__()
        self._debounce = debounce_seconds
        self._changed = changed
        self._ignored = ignored
        self._callback = callback
        self._last_event: dict[str, float] = {}

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = str(event.src_path)
        if _should_ignore(src, self._ignored):
            return

        now = time.monotonic()
        last = self._last_event.get(src)
        if last is not None and now - last < self._debounce:
            return
        self._last_event[src] = now

        self._changed.set()

        if self._callback is not None:
            try:
                self._callback(event.event_type, src)
            except Exception:
                logger.exception("Watcher callback failed for %s", src)


class SourceWatcher:
    """Watches the guide's source directory and flags when anything moves.

    The flag only shortens the wait between passes; whether a source
    really changed is still decided by the ChangeTracker.
    """

    def __init__(
        self,
        root: Path,
        debounce_seconds: float = 0.5,
        ignore: list[Path] | None = None,
        callback: Callable[[str, str], None] | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._changed = threading.Event()
        self._observer: Observer | None = None
        self._handler = _DebouncedHandler(
            debounce_seconds=debounce_seconds,
            changed=self._changed,
            ignored={Path(p).resolve() for p in (ignore or [])},
            callback=callback,
        )

    @property
    def changed(self) -> bool:
        return self._changed.is_set()

    def clear(self) -> None:
        self._changed.clear()

    def start(self) -> None:
        """Begin watching the guide directory recursively."""
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self._handler, str(self._root), recursive=True)
        self._observer.start()
        logger.info("Watching %s for changes", self._root)

    def stop(self) -> None:
        """Stop watching and clean up."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("Stopped watching %s", self._root)
