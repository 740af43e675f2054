"""
File watcher that keeps workspace scan results fresh.

Uses watchdog to monitor a workspace root and drops the scanner's cached
file list as soon as a metadata file is created, deleted, moved or
modified, so the next search rescans instead of waiting for the TTL.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
import threading
from typing import Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .scanner import _SKIP_DIRS, WorkspaceScanner

logger = logging.getLogger(__name__)


class WorkspaceEventHandler(FileSystemEventHandler):
    """
    Invalidates the scan cache of *root* on relevant file system events.

    Parameters
    ----------
    scanner:
        The scanner whose cache entry should be dropped.
    root:
        Workspace root being watched.
    loop:
        Event loop that owns *scanner*.  When given, invalidation is handed
        to the loop thread instead of running on the watchdog thread.
    include_pattern:
        File name glob considered relevant.
    """

    def __init__(
        self,
        scanner: WorkspaceScanner,
        root: str,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        include_pattern: str = "*.xml",
    ) -> None:
        super().__init__()
        self._scanner = scanner
        self._root = os.path.abspath(root)
        self._loop = loop
        self._include = include_pattern.lower()

    # ------------------------------------------------------------------
    # Watchdog event dispatch
    # ------------------------------------------------------------------

    def on_created(self, event) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_deleted(self, event) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_modified(self, event) -> None:
        # Directory mtimes change with every child; the child event is enough
        if not event.is_directory:
            self._handle(event.src_path, False)

    def on_moved(self, event) -> None:
        self._handle(event.src_path, event.is_directory)
        self._handle(event.dest_path, event.is_directory)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _should_ignore(self, path: str, is_directory: bool) -> bool:
        parts = os.fsdecode(path).replace("\\", "/").split("/")
        if any(part in _SKIP_DIRS for part in parts):
            return True
        if is_directory:
            return False
        return not fnmatch.fnmatch(parts[-1].lower(), self._include)

    def _handle(self, path, is_directory: bool) -> None:
        if self._should_ignore(path, is_directory):
            return
        logger.info("[Workspace watcher] Change detected: %s", os.fsdecode(path))
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._scanner.invalidate, self._root)
        else:
            self._scanner.invalidate(self._root)


class WorkspaceWatcher:
    """
    High-level wrapper around a watchdog observer for one workspace root.

    Usage::

        watcher = WorkspaceWatcher(scanner, "/path/to/workspace")
        watcher.start()   # blocking (call from a thread) or use start_background()
        watcher.stop()
    """

    def __init__(
        self,
        scanner: WorkspaceScanner,
        root: str,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._root = os.path.abspath(root)
        self._handler = WorkspaceEventHandler(scanner, self._root, loop=loop)
        self._observer: Optional[Observer] = None

    @property
    def handler(self) -> WorkspaceEventHandler:
        return self._handler

    def start(self) -> None:
        """Start watching.  Blocks until :meth:`stop` is called or Ctrl+C."""
        observer = Observer()
        observer.schedule(self._handler, self._root, recursive=True)
        observer.start()
        self._observer = observer
        logger.info("[Workspace watcher] Watching %s", self._root)

        try:
            while observer.is_alive():
                observer.join(timeout=1)
        except KeyboardInterrupt:
            observer.stop()
        observer.join()

    def start_background(self) -> threading.Thread:
        """Start the watcher in a daemon thread and return the thread."""
        t = threading.Thread(target=self.start, daemon=True, name="workspace-watcher")
        t.start()
        return t

    def stop(self) -> None:
        """Stop the observer."""
        if self._observer is not None:
            self._observer.stop()
            logger.info("[Workspace watcher] Stopped")
