"""Advisory write exclusion based on ``.private`` marker files."""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod

from .filesystem import FileSystem
from .layout import marker_path_for

MARKER_PLACEHOLDER = b"dummy"


class Exclusion(ABC):
    """Signals that a record is being written.

    The protocol is cooperative: nothing stops a writer that does not check.
    """

    @abstractmethod
    def acquire(self, path: str) -> None:
        """Flag *path* as being written."""

    @abstractmethod
    def release(self, path: str) -> None:
        """Clear the flag for *path*. Releasing an unflagged path succeeds."""

    @abstractmethod
    def check(self, path: str) -> bool:
        """Return True when a write of *path* is in progress."""


class MarkerExclusion(Exclusion):
    """Keeps the flag as a non-empty sibling file named ``<path>.private``.

    Acquire, content write and release are separate filesystem operations. A
    process that dies in between leaves the marker behind and the record stays
    locked until the marker is deleted.
    """

    def __init__(self, fs: FileSystem) -> None:
        self._fs = fs

    def acquire(self, path: str) -> None:
        marker = marker_path_for(path)
        self._fs.mkdir_all(posixpath.dirname(marker))
        with self._fs.open_write(marker) as handle:
            handle.write(MARKER_PLACEHOLDER)

    def release(self, path: str) -> None:
        try:
            self._fs.remove(marker_path_for(path))
        except FileNotFoundError:
            return

    def check(self, path: str) -> bool:
        try:
            info = self._fs.stat(marker_path_for(path))
        except FileNotFoundError:
            return False
        return info.size > 0


__all__ = ["Exclusion", "MarkerExclusion", "MARKER_PLACEHOLDER"]
