"""
Directory index over the served root.

Lists, searches and reads files beneath a single root directory. Every
user-supplied path goes through the containment check in
``DirectoryIndex.resolve`` before the filesystem is touched. Blocking
filesystem work runs in a worker thread so the event loop stays free.
"""

import asyncio
import errno
import logging
import os
import stat
from datetime import datetime, timezone
from pathlib import Path

from config import MAX_TEXT_BYTES, SEARCH_MAX_RESULTS
from browse.errors import AccessDenied, InvalidRequest, NotFound, UpstreamFailure
from browse.models import DirectoryEntry

logger = logging.getLogger(__name__)

# Per-entry failures that drop the entry instead of failing the call
SKIPPABLE_ERRNOS = {errno.EPERM, errno.EACCES, errno.EBUSY}


def _scandir(path: Path) -> list[os.DirEntry]:
    with os.scandir(path) as it:
        return list(it)


def _stat(path: Path, follow_symlinks: bool = True) -> os.stat_result:
    return os.stat(path, follow_symlinks=follow_symlinks)


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class DirectoryIndex:
    """Read-only view of the served root."""

    def __init__(self, root: str | Path) -> None:
        resolved = os.path.realpath(os.fspath(root))
        if not os.path.isdir(resolved):
            raise ValueError(f"Served root is not a directory: {root}")
        self._root = Path(resolved)
        self._root_str = resolved
        self.search_limit = SEARCH_MAX_RESULTS
        self.max_text_bytes = MAX_TEXT_BYTES

    @property
    def root(self) -> Path:
        return self._root

    # --- Containment ---

    def _contains(self, candidate: str) -> bool:
        try:
            return os.path.commonpath([self._root_str, candidate]) == self._root_str
        except ValueError:
            # Different drives on Windows
            return False

    def resolve(self, relative_path: str) -> Path:
        """
        Map a client path onto the filesystem.

        Raises AccessDenied when the resolved location is outside the root.
        Symlinks are resolved before the check, so a link pointing out of
        the root is rejected as well.
        """
        if "\x00" in relative_path:
            raise InvalidRequest("Invalid path", relative_path)

        normalized = relative_path
        if os.sep == "\\":
            normalized = normalized.replace("\\", "/")
        normalized = "/" + normalized.lstrip("/")
        candidate = os.path.realpath(
            os.path.join(self._root_str, normalized.lstrip("/"))
        )
        if not self._contains(candidate):
            logger.warning(f"Blocked access outside served root: {relative_path!r}")
            raise AccessDenied("Access denied", relative_path)
        return Path(candidate)

    def relative(self, path: Path) -> str:
        """POSIX path of ``path`` relative to the root, no leading slash."""
        rel = path.relative_to(self._root).as_posix()
        return "" if rel == "." else rel

    def _entry(self, path: Path, st: os.stat_result) -> DirectoryEntry:
        is_dir = stat.S_ISDIR(st.st_mode)
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return DirectoryEntry(
            name=path.name,
            is_directory=is_dir,
            path=self.relative(path),
            size=None if is_dir else st.st_size,
            created=_timestamp(created),
            modified=_timestamp(st.st_mtime),
        )

    # --- Listing ---

    async def list_directory(self, relative_path: str = "/") -> list[DirectoryEntry]:
        """Immediate children of ``relative_path``, directories first."""
        return await asyncio.to_thread(self._list_sync, relative_path)

    def _list_sync(self, relative_path: str) -> list[DirectoryEntry]:
        target = self.resolve(relative_path)
        try:
            items = _scandir(target)
        except FileNotFoundError:
            raise NotFound("Directory not found", relative_path)
        except NotADirectoryError:
            raise InvalidRequest("Requested path is not a directory", relative_path)
        except PermissionError:
            raise AccessDenied("Directory access error", relative_path)
        except OSError as e:
            raise UpstreamFailure(f"Server error: {e}", relative_path) from e

        entries: list[DirectoryEntry] = []
        for item in items:
            child = target / item.name
            if item.is_symlink():
                resolved = os.path.realpath(child)
                if not self._contains(resolved) or not os.path.exists(resolved):
                    logger.debug(f"Skipped symlink leaving the served root: {child}")
                    continue
            try:
                st = _stat(child)
            except OSError as e:
                if e.errno in SKIPPABLE_ERRNOS:
                    logger.warning(f"Skipped inaccessible/busy entry: {child} ({e})")
                    continue
                raise UpstreamFailure(f"Server error: {e}", relative_path) from e
            entries.append(self._entry(child, st))

        # Stable sort keeps enumeration order inside each group
        entries.sort(key=lambda entry: not entry.is_directory)
        return entries

    # --- Search ---

    async def search(self, term: str) -> list[DirectoryEntry]:
        """Case-insensitive name search over the whole tree."""
        if not term or not term.strip():
            return []
        return await asyncio.to_thread(self._search_sync, term)

    def _search_sync(self, term: str) -> list[DirectoryEntry]:
        needle = term.lower()
        results: list[DirectoryEntry] = []
        # One iterator per open directory; the top of the stack is the deepest
        stack = [(self._root, iter(self._read_for_search(self._root)))]

        while stack:
            directory, items = stack[-1]
            item = next(items, None)
            if item is None:
                stack.pop()
                continue
            if item.is_symlink():
                continue

            child = directory / item.name
            try:
                st = _stat(child, follow_symlinks=False)
            except OSError as e:
                if e.errno in SKIPPABLE_ERRNOS:
                    logger.warning(f"Skipped inaccessible/busy entry during search: {child} ({e})")
                    continue
                raise UpstreamFailure(f"File search error: {e}") from e

            if needle in item.name.lower():
                results.append(self._entry(child, st))
                if self.search_limit and len(results) >= self.search_limit:
                    logger.info(f"Search stopped at {self.search_limit} results")
                    break

            if stat.S_ISDIR(st.st_mode):
                stack.append((child, iter(self._read_for_search(child))))

        return results

    def _read_for_search(self, directory: Path) -> list[os.DirEntry]:
        try:
            return _scandir(directory)
        except OSError as e:
            if e.errno in SKIPPABLE_ERRNOS:
                logger.warning(f"Skipped inaccessible directory during search: {directory} ({e})")
                return []
            raise UpstreamFailure(f"File search error: {e}") from e

    # --- File content ---

    def _file_stat(self, relative_path: str) -> tuple[Path, os.stat_result]:
        if not relative_path:
            raise InvalidRequest("Path parameter is missing")
        target = self.resolve(relative_path)
        try:
            st = _stat(target)
        except FileNotFoundError:
            raise NotFound("File not found", relative_path)
        except PermissionError:
            raise AccessDenied("File access error", relative_path)
        except OSError as e:
            raise UpstreamFailure(f"Server error while reading file: {e}", relative_path) from e
        if stat.S_ISDIR(st.st_mode):
            raise InvalidRequest("Requested path is a directory", relative_path)
        return target, st

    def resolve_file(self, relative_path: str) -> Path:
        """Contained, existing, non-directory file for raw serving."""
        target, _ = self._file_stat(relative_path)
        return target

    async def locate_file(self, relative_path: str) -> Path:
        """``resolve_file`` run off the event loop."""
        return await asyncio.to_thread(self.resolve_file, relative_path)

    async def read_text(self, relative_path: str) -> str:
        """Whole file decoded as UTF-8, for previewing small text files."""
        return await asyncio.to_thread(self._read_text_sync, relative_path)

    def _read_text_sync(self, relative_path: str) -> str:
        target, st = self._file_stat(relative_path)
        if self.max_text_bytes and st.st_size > self.max_text_bytes:
            raise InvalidRequest(
                f"File is larger than {self.max_text_bytes} bytes", relative_path
            )
        try:
            return target.read_text(encoding="utf-8", errors="replace")
        except PermissionError:
            raise AccessDenied("File access error", relative_path)
        except OSError as e:
            raise UpstreamFailure(f"Server error while reading file: {e}", relative_path) from e
