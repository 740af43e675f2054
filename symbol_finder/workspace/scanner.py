"""
Workspace Scanner: live discovery of local metadata files.

A scan walks the workspace root once, records each ``*.xml`` file with its
inferred type and modification time, and caches the list for five minutes.
Structured metadata is only parsed when a caller asks for a specific file,
which keeps the bulk scan cheap.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
import re
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from ..errors import MetadataParseError, WorkspaceUnavailableError
from .models import MetadataResult, WorkspaceFile, WorkspaceFileType
from .paths import is_path_within_bounds
from .xml_metadata import parse_metadata

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Discovery rules
# ---------------------------------------------------------------------------

_SKIP_DIRS: frozenset[str] = frozenset({
    ".git", ".svn", ".hg",
    "node_modules",
    "bin", "obj",       # build output
    ".vs", "__pycache__",
    ".symfind",
})

_TYPE_SEGMENTS: dict[str, str] = {
    "AxClass": WorkspaceFileType.CLASS,
    "AxTable": WorkspaceFileType.TABLE,
    "AxForm": WorkspaceFileType.FORM,
    "AxEnum": WorkspaceFileType.ENUM,
}

DEFAULT_TTL_SECONDS = 5 * 60


def detect_file_type(path: str) -> str:
    """Infer the file type from an ``AxClass``/``AxTable``/... directory in *path*."""
    directories = re.split(r"[\\/]", path)[:-1]
    for segment in directories:
        file_type = _TYPE_SEGMENTS.get(segment)
        if file_type:
            return file_type
    return WorkspaceFileType.UNKNOWN


@dataclass(frozen=True)
class ScanCacheEntry:
    """The file list of one workspace root and when it stops being valid."""
    root: str
    files: tuple[WorkspaceFile, ...]
    scanned_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# ---------------------------------------------------------------------------
# WorkspaceScanner
# ---------------------------------------------------------------------------

class WorkspaceScanner:
    """
    Scans workspace roots and caches the results per root.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of a cached scan.
    clock:
        Monotonic time source used for expiry.  Inject a fake in tests.
    include_pattern:
        Glob matched (case-insensitively) against file names.
    skip_dirs:
        Directory names never descended into.
    schedule_eviction:
        Also evict entries with an event-loop timer.  Expiry is checked on
        every read regardless.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        include_pattern: str = "*.xml",
        skip_dirs: frozenset[str] = _SKIP_DIRS,
        schedule_eviction: bool = True,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._include = include_pattern.lower()
        self._skip_dirs = skip_dirs
        self._schedule_eviction = schedule_eviction
        self._cache: dict[str, ScanCacheEntry] = {}

    # ------------------------------------------------------------------
    # Cache lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _key(root: str) -> str:
        return os.path.abspath(root)

    def cached_entry(self, root: str) -> Optional[ScanCacheEntry]:
        """Return the live cache entry for *root*, or None if missing/expired."""
        key = self._key(root)
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Only drop the entry we looked at; a newer scan may have replaced it
            if self._cache.get(key) is entry:
                del self._cache[key]
            return None
        return entry

    def invalidate(self, root: Optional[str] = None) -> None:
        """Forget the cached scan of *root*, or of every root when None."""
        if root is None:
            self._cache.clear()
            logger.debug("Workspace cache cleared")
            return
        if self._cache.pop(self._key(root), None) is not None:
            logger.debug("Workspace cache invalidated for %s", root)

    def _evict(self, key: str, entry: ScanCacheEntry) -> None:
        if self._cache.get(key) is entry:
            del self._cache[key]
            logger.debug("Workspace cache entry for %s evicted by timer", key)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _discover(self, root: str) -> list[WorkspaceFile]:
        """
        Walk *root* synchronously.  Unreadable files are skipped, and so are
        symlinks that resolve outside *root*.
        """
        if not os.path.isdir(root):
            raise WorkspaceUnavailableError(f"Workspace path is not a directory: {root}")

        def _on_walk_error(exc: OSError) -> None:
            logger.debug("Skipping unreadable directory: %s", exc)

        real_root = os.path.realpath(root)
        files: list[WorkspaceFile] = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_walk_error):
            dirnames[:] = sorted(d for d in dirnames if d not in self._skip_dirs)
            for fname in sorted(filenames):
                if not fnmatch.fnmatch(fname.lower(), self._include):
                    continue
                path = os.path.join(dirpath, fname)
                if os.path.islink(path) and not is_path_within_bounds(
                        real_root, os.path.realpath(path)):
                    logger.debug("Skipping %s: links outside the workspace", path)
                    continue
                try:
                    mtime = os.stat(path).st_mtime
                except OSError as exc:
                    logger.debug("Skipping %s: %s", path, exc)
                    continue
                files.append(WorkspaceFile(
                    path=path,
                    name=os.path.splitext(fname)[0],
                    type=detect_file_type(path),
                    last_modified=mtime,
                ))
        return files

    async def scan_workspace(self, root: str) -> list[WorkspaceFile]:
        """
        Return every metadata file under *root*.

        Served from the cache while the entry is fresh; otherwise the tree is
        walked (off the event loop) and a new entry replaces the old one.

        Raises
        ------
        WorkspaceUnavailableError
            When *root* is missing or not a directory.
        """
        entry = self.cached_entry(root)
        if entry is not None:
            return list(entry.files)

        key = self._key(root)
        t0 = time.perf_counter()
        files = await asyncio.to_thread(self._discover, key)
        now = self._clock()
        entry = ScanCacheEntry(
            root=key,
            files=tuple(files),
            scanned_at=now,
            expires_at=now + self._ttl,
        )
        self._cache[key] = entry
        if self._schedule_eviction:
            asyncio.get_running_loop().call_later(self._ttl, self._evict, key, entry)

        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("Scanned %s: %d files in %.1fms", key, len(files), elapsed)
        return list(files)

    async def search_in_workspace(
        self, root: str, query: str, type_: Optional[str] = None
    ) -> list[WorkspaceFile]:
        """Files whose name contains *query* (ignoring case), optionally of one type."""
        files = await self.scan_workspace(root)
        q = query.lower()
        return [
            f for f in files
            if (not type_ or f.type == type_) and q in f.name.lower()
        ]

    async def get_workspace_stats(self, root: str) -> dict:
        """Counts of files per type under *root*."""
        files = await self.scan_workspace(root)
        def _count(file_type: str) -> int:
            return sum(1 for f in files if f.type == file_type)

        return {
            "total_files": len(files),
            "classes": _count(WorkspaceFileType.CLASS),
            "tables": _count(WorkspaceFileType.TABLE),
            "forms": _count(WorkspaceFileType.FORM),
            "enums": _count(WorkspaceFileType.ENUM),
        }

    # ------------------------------------------------------------------
    # On-demand file access
    # ------------------------------------------------------------------

    async def read_file(self, path: str) -> str:
        def _read() -> str:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        return await asyncio.to_thread(_read)

    async def parse_xml_file(self, path: str) -> MetadataResult:
        """
        Parse one file's class or table metadata.

        Never raises: read and parse failures come back as a
        :class:`MetadataResult` in the ``error`` state, and types without
        structured metadata come back ``absent``.
        """
        file_type = detect_file_type(path)

        def _read_and_parse():
            with open(path, "r", encoding="utf-8") as fh:
                return parse_metadata(fh.read(), file_type, path)

        try:
            metadata = await asyncio.to_thread(_read_and_parse)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            return MetadataResult(error=f"read failed: {exc}")
        except MetadataParseError as exc:
            logger.warning("Failed to parse %s: %s", path, exc.reason)
            return MetadataResult(error=exc.reason)
        return MetadataResult(metadata=metadata)

    async def get_file_with_metadata(self, path: str) -> Optional[WorkspaceFile]:
        """
        Return *path* as a :class:`WorkspaceFile` with its metadata parsed.

        Returns None when the file cannot be stat-ed.  A parse failure keeps
        the file and records the reason in ``metadata_error``.
        """
        try:
            st = await asyncio.to_thread(os.stat, path)
        except OSError as exc:
            logger.warning("Failed to get file metadata for %s: %s", path, exc)
            return None

        base = WorkspaceFile(
            path=os.path.abspath(path),
            name=os.path.splitext(os.path.basename(path))[0],
            type=detect_file_type(path),
            last_modified=st.st_mtime,
        )
        result = await self.parse_xml_file(path)
        return replace(base, metadata=result.metadata, metadata_error=result.error)
