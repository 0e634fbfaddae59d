"""
File-backed store of authorized command patterns.

One regex per line in ``<config_dir>/authorized_commands`` (mode 0600, parent
directory 0700). Reads go through a cache keyed by the file's modification
time; writers invalidate it after their I/O so the next read sees the change.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

from cmdgate.core.config import Config, log_event

DIR_MODE = 0o700
FILE_MODE = 0o600


class StoreError(OSError):
    """Reading or writing the authorized commands file failed."""


def dedupe_patterns(patterns: Iterable[str]) -> list[str]:
    """Strip entries, drop blanks and duplicates. First occurrence wins."""
    seen: set[str] = set()
    result = []
    for pattern in patterns:
        pattern = pattern.strip()
        if pattern and pattern not in seen:
            seen.add(pattern)
            result.append(pattern)
    return result


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile patterns, skipping any that are not valid regexes."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error:
            continue
    return compiled


def matches_any(command: str, compiled: Iterable[re.Pattern[str]]) -> bool:
    return any(regex.search(command) for regex in compiled)


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class AuthorizationStore:
    """Deduplicated, ordered list of approved patterns backed by a file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._write_mutex = threading.Lock()
        self._cache_lock = ReadWriteLock()
        self._cached: list[str] | None = None
        self._cached_mtime: int | None = None

    @classmethod
    def from_config(cls, config: Config) -> AuthorizationStore:
        return cls(config.authorized_commands_file)

    def __repr__(self) -> str:
        return f"AuthorizationStore({str(self.path)!r})"

    # === Reading ===

    def _read(self) -> list[str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        return [line.strip() for line in text.split("\n") if line.strip()]

    def load(self) -> list[str]:
        """Read all stored patterns. A missing file is an empty store."""
        try:
            return self._read()
        except OSError as e:
            raise StoreError(f"cannot read {self.path}: {e}") from e

    def is_pattern_literally_present(self, pattern: str) -> bool:
        """Exact string comparison against stored lines, never a regex match."""
        return pattern.strip() in self.load()

    def is_command_authorized(self, command: str) -> bool:
        """True when any stored pattern matches ``command``."""
        return matches_any(command, compile_patterns(self.cached_patterns()))

    # === Cache ===

    def _mtime(self) -> int | None:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"cannot stat {self.path}: {e}") from e

    def cached_patterns(self) -> list[str]:
        """Stored patterns, reloaded only when the file's mtime changed."""
        mtime = self._mtime()

        with self._cache_lock.read():
            if self._cached is not None and self._cached_mtime == mtime:
                return list(self._cached)

        with self._cache_lock.write():
            # Another thread may have reloaded while we waited
            if self._cached is not None and self._cached_mtime == mtime:
                return list(self._cached)
            patterns = self.load() if mtime is not None else []
            self._cached = patterns
            self._cached_mtime = mtime
            log_event("debug", "store_cache_reloaded", path=str(self.path), count=len(patterns))
            return list(patterns)

    def reset_cache(self) -> None:
        with self._cache_lock.write():
            self._cached = None
            self._cached_mtime = None

    # === Writing ===

    def _secure_directory(self) -> None:
        directory = self.path.parent
        directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        os.chmod(directory, DIR_MODE)

    def append(self, pattern: str) -> None:
        """Append one pattern. Already-present patterns are not written twice."""
        pattern = pattern.strip()
        if not pattern:
            raise ValueError("pattern must not be blank")

        with self._write_mutex:
            try:
                self._secure_directory()
                if pattern not in self._read():
                    fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, FILE_MODE)
                    with os.fdopen(fd, "a", encoding="utf-8") as f:
                        os.fchmod(f.fileno(), FILE_MODE)
                        f.write(pattern + "\n")
                else:
                    os.chmod(self.path, FILE_MODE)
            except OSError as e:
                log_event("error", "store_write_failed", path=str(self.path), error=str(e))
                raise StoreError(f"cannot append to {self.path}: {e}") from e

        self.reset_cache()

    def replace_all(self, patterns: Iterable[str]) -> None:
        """Atomically rewrite the store with ``patterns``, deduplicated."""
        patterns = dedupe_patterns(patterns)

        with self._write_mutex:
            try:
                self._secure_directory()
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write("".join(pattern + "\n" for pattern in patterns))
                    os.chmod(tmp_path, FILE_MODE)
                    os.replace(tmp_path, self.path)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        os.unlink(tmp_path)
                    raise
            except OSError as e:
                log_event("error", "store_write_failed", path=str(self.path), error=str(e))
                raise StoreError(f"cannot rewrite {self.path}: {e}") from e

        self.reset_cache()
