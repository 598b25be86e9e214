"""Exceptions raised by the store."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # Avoid circular imports at runtime
    from .models import Request


class StoreError(RuntimeError):
    """Base class for every condition reported by the store."""


class NotFoundInStore(StoreError):
    """Raised when nothing is stored at the resolved path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not found in store: {path}")
        self.path = path


class FoundEmptyInStore(StoreError):
    """Raised when a record exists but has zero length (an interrupted write)."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Found 0 size file in store: {path}")
        self.path = path


class FoundInStorePrivate(StoreError):
    """Raised when a write-exclusion marker is present for the record."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Found in store private: {path}")
        self.path = path


class FoundInStore(StoreError):
    """Raised when a write without override meets committed content."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Found in store: {path}")
        self.path = path


class MalformedRecordError(StoreError):
    """Raised when a stored request or response header cannot be decoded.

    ``placeholder`` is a stand-in request useful for log output only.
    """

    def __init__(self, message: str, *, line: str = "", placeholder: "Request | None" = None) -> None:
        super().__init__(message)
        self.line = line
        self.placeholder = placeholder


__all__ = [
    "FoundEmptyInStore",
    "FoundInStore",
    "FoundInStorePrivate",
    "MalformedRecordError",
    "NotFoundInStore",
    "StoreError",
]
