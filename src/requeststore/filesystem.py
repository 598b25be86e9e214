"""Byte-oriented filesystems the store can be layered on."""

from __future__ import annotations

import io
import os
import stat
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from .layout import normalize_path


@dataclass(slots=True, frozen=True)
class FileInfo:
    """Metadata returned by :meth:`FileSystem.stat` and :meth:`FileSystem.walk`."""

    path: str
    size: int
    is_dir: bool
    modified: float


class FileSystem(ABC):
    """The five capabilities the store needs, plus a recursive walk.

    Paths are POSIX strings relative to the filesystem root. A missing path is
    always reported as :class:`FileNotFoundError`.
    """

    @abstractmethod
    def mkdir_all(self, path: str) -> None:
        """Create *path* and any missing parents."""

    @abstractmethod
    def open_read(self, path: str) -> BinaryIO:
        """Open an existing file for reading."""

    @abstractmethod
    def open_write(self, path: str) -> BinaryIO:
        """Create or truncate a file for writing. The parent must exist."""

    @abstractmethod
    def stat(self, path: str) -> FileInfo:
        """Return metadata for *path*."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""

    @abstractmethod
    def walk(self, root: str) -> Iterator[tuple[str, FileInfo]]:
        """Yield ``(path, info)`` for *root* and everything below it in sorted order.

        Yields nothing when *root* does not exist.
        """


class _MemoryWriter(io.BytesIO):
    def __init__(self, owner: "MemoryFileSystem", path: str) -> None:
        super().__init__()
        self._owner = owner
        self._path = path

    def close(self) -> None:
        if not self.closed:
            self._owner._commit(self._path, self.getvalue())
        super().close()


class MemoryFileSystem(FileSystem):
    """Ephemeral filesystem kept in a dictionary.

    Content written through :meth:`open_write` becomes visible when the handle
    is closed; until then the file exists with zero length.
    """

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}
        self._mtimes: dict[str, float] = {}
        self._dirs: set[str] = {""}
        self._lock = threading.Lock()

    def mkdir_all(self, path: str) -> None:
        path = normalize_path(path)
        with self._lock:
            for directory in _lineage(path):
                if directory in self._files:
                    raise NotADirectoryError(f"Not a directory: {directory}")
                if directory not in self._dirs:
                    self._dirs.add(directory)
                    self._mtimes[directory] = time.time()

    def open_read(self, path: str) -> BinaryIO:
        path = normalize_path(path)
        with self._lock:
            if path in self._dirs:
                raise IsADirectoryError(f"Is a directory: {path}")
            try:
                data = self._files[path]
            except KeyError:
                raise FileNotFoundError(f"No such file: {path}") from None
        return io.BytesIO(data)

    def open_write(self, path: str) -> BinaryIO:
        path = normalize_path(path)
        parent = _parent(path)
        with self._lock:
            if path in self._dirs:
                raise IsADirectoryError(f"Is a directory: {path}")
            if parent not in self._dirs:
                raise FileNotFoundError(f"No such directory: {parent}")
            self._files[path] = b""
            self._mtimes[path] = time.time()
        return _MemoryWriter(self, path)

    def stat(self, path: str) -> FileInfo:
        path = normalize_path(path)
        with self._lock:
            return self._info(path)

    def remove(self, path: str) -> None:
        path = normalize_path(path)
        with self._lock:
            if path in self._files:
                del self._files[path]
                self._mtimes.pop(path, None)
                return
            if path in self._dirs and path:
                prefix = f"{path}/"
                if any(name.startswith(prefix) for name in (*self._files, *self._dirs)):
                    raise OSError(f"Directory not empty: {path}")
                self._dirs.discard(path)
                self._mtimes.pop(path, None)
                return
        raise FileNotFoundError(f"No such file or directory: {path}")

    def walk(self, root: str) -> Iterator[tuple[str, FileInfo]]:
        root = normalize_path(root)
        with self._lock:
            if root not in self._dirs and root not in self._files:
                return
            prefix = f"{root}/" if root else ""
            names = [root] + sorted(
                name for name in (*self._dirs, *self._files) if name and name.startswith(prefix)
            )
            entries = [(name, self._info(name)) for name in names]
        yield from entries

    def _commit(self, path: str, data: bytes) -> None:
        with self._lock:
            # The file may have been removed while the handle was open.
            if path in self._files:
                self._files[path] = data
                self._mtimes[path] = time.time()

    def _info(self, path: str) -> FileInfo:
        if path in self._files:
            return FileInfo(path, len(self._files[path]), False, self._mtimes.get(path, 0.0))
        if path in self._dirs:
            return FileInfo(path, 0, True, self._mtimes.get(path, 0.0))
        raise FileNotFoundError(f"No such file or directory: {path}")


class DiskFileSystem(FileSystem):
    """Filesystem confined to a directory on local disk."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._root = self.root.resolve()

    def mkdir_all(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def open_read(self, path: str) -> BinaryIO:
        return self._resolve(path).open("rb")

    def open_write(self, path: str) -> BinaryIO:
        return self._resolve(path).open("wb")

    def stat(self, path: str) -> FileInfo:
        target = self._resolve(path)
        return self._info(normalize_path(path), target.stat())

    def remove(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_dir():
            target.rmdir()
        else:
            target.unlink()

    def walk(self, root: str) -> Iterator[tuple[str, FileInfo]]:
        root = normalize_path(root)
        top = self._resolve(root)
        try:
            yield root, self._info(root, top.stat())
        except FileNotFoundError:
            return
        if not top.is_dir():
            return
        for current, dirnames, filenames in os.walk(top):
            dirnames.sort()
            relative = Path(current).relative_to(self._root).as_posix()
            for name in sorted([*dirnames, *filenames]):
                path = normalize_path(f"{relative}/{name}")
                try:
                    info = self._info(path, os.stat(os.path.join(current, name)))
                except FileNotFoundError:
                    # Removed between listing and stat.
                    continue
                yield path, info

    def _resolve(self, path: str) -> Path:
        target = (self._root / normalize_path(path)).resolve()
        try:
            target.relative_to(self._root)
        except ValueError as exc:
            raise ValueError(f"Path escapes the store root: {path}") from exc
        return target

    def _info(self, path: str, result: os.stat_result) -> FileInfo:
        is_dir = stat.S_ISDIR(result.st_mode)
        return FileInfo(path, 0 if is_dir else result.st_size, is_dir, result.st_mtime)


def _parent(path: str) -> str:
    head, _, _ = path.rpartition("/")
    return head


def _lineage(path: str) -> list[str]:
    if not path:
        return []
    parts = path.split("/")
    return ["/".join(parts[: index + 1]) for index in range(len(parts))]


__all__ = ["DiskFileSystem", "FileInfo", "FileSystem", "MemoryFileSystem"]
