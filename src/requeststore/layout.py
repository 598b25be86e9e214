"""On-disk layout of stored exchanges."""

from __future__ import annotations

import posixpath
from urllib.parse import quote

REQUEST_PREFIX = "request"
HEADER_PREFIX = "header"
BODY_PREFIX = "body"
# Reserved for future record types; nothing is written below them yet.
METALINK_PREFIX = "metalink"
JOURNAL_PREFIX = "journal"

FORMAT_PREFIX = "v1"
MARKER_SUFFIX = ".private"


def normalize_path(path: str) -> str:
    """Collapse duplicate separators and ``.`` segments, drop leading slashes."""

    normalized = posixpath.normpath(path.replace("\\", "/"))
    normalized = normalized.lstrip("/")
    if normalized == ".":
        return ""
    return normalized


def class_root(prefix: str) -> str:
    return f"{prefix}/{FORMAT_PREFIX}"


def path_for(prefix: str, digest: str) -> str:
    """Return the content path of *digest* below the *prefix* class.

    The digest becomes a single percent-encoded file name, so distinct digests
    map to distinct paths that stay inside the class directory. Hex digests are
    unchanged by the encoding. Digests that cannot name a record (empty, ``.``,
    ``..`` or ending in the marker suffix) raise :class:`ValueError`.
    """

    if digest in ("", ".", "..") or digest.endswith(MARKER_SUFFIX):
        raise ValueError(f"Digest {digest!r} cannot be used as a record name")
    name = quote(digest, safe="")
    return f"{class_root(prefix)}/{name}"


def marker_path_for(path: str) -> str:
    return f"{path}{MARKER_SUFFIX}"


def is_marker_path(path: str) -> bool:
    return path.endswith(MARKER_SUFFIX)


__all__ = [
    "BODY_PREFIX",
    "FORMAT_PREFIX",
    "HEADER_PREFIX",
    "JOURNAL_PREFIX",
    "MARKER_SUFFIX",
    "METALINK_PREFIX",
    "REQUEST_PREFIX",
    "class_root",
    "is_marker_path",
    "marker_path_for",
    "normalize_path",
    "path_for",
]
