"""Derive the storage digest for a caller supplied key."""

from __future__ import annotations

import hashlib

DEFAULT_ALGORITHM = "sha256"
PLAIN = "plain"
SUPPORTED_ALGORITHMS = ("sha256", "sha224", "sha384", "sha512", "sha1", "md5", "md4", PLAIN)


def resolve_algorithm(name: str | None) -> str:
    """Return the canonical algorithm name for *name*.

    Unknown or empty selectors fall back to :data:`DEFAULT_ALGORITHM`.
    """

    if not name:
        return DEFAULT_ALGORITHM
    normalized = name.strip().lower()
    if normalized not in SUPPORTED_ALGORITHMS:
        return DEFAULT_ALGORITHM
    return normalized


def ensure_available(name: str | None) -> str:
    """Resolve *name* and make sure the interpreter can compute it.

    ``md4`` is only present when the linked OpenSSL still ships the legacy
    provider, so it is checked here rather than on every key.
    """

    algorithm = resolve_algorithm(name)
    if algorithm == PLAIN:
        return algorithm
    try:
        hashlib.new(algorithm)
    except ValueError as exc:
        raise ValueError(f"Digest algorithm {algorithm!r} is not available in this interpreter") from exc
    return algorithm


def hash_key(key: str, algorithm: str | None = None) -> str:
    """Return the hex digest of *key* (or *key* itself in ``plain`` mode)."""

    resolved = resolve_algorithm(algorithm)
    if resolved == PLAIN:
        return key
    digest = hashlib.new(resolved)
    digest.update(key.encode("utf-8"))
    return digest.hexdigest()


__all__ = [
    "DEFAULT_ALGORITHM",
    "PLAIN",
    "SUPPORTED_ALGORITHMS",
    "ensure_available",
    "hash_key",
    "resolve_algorithm",
]
