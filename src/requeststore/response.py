"""In-memory response entity wrapping a stored or live body stream."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import BinaryIO, Callable, Mapping

from requests import Response as HttpResponse
from urllib3 import HTTPHeaderDict

VIA_PSEUDONYM = "ms-store"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Replaced in tests to pin response timestamps.
clock: Callable[[], datetime] = utcnow


def parse_http_date(value: str) -> datetime:
    """Parse an RFC 1123, RFC 850 or asctime date into an aware datetime.

    Raises :class:`ValueError` for anything else.
    """

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError) as exc:
        raise ValueError(f"Invalid HTTP date {value!r}") from exc
    if parsed is None:  # pragma: no cover - older interpreters
        raise ValueError(f"Invalid HTTP date {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Response:
    """Status, headers and a readable, seekable, closable body.

    The staleness flag is only ever set by :meth:`mark_stale`; nothing here
    inspects cache headers to decide it.
    """

    def __init__(
        self,
        status: int,
        body: BinaryIO,
        headers: Mapping[str, str] | HTTPHeaderDict | None = None,
    ) -> None:
        self._status = status
        self._body = body
        self._headers = HTTPHeaderDict(headers or {})
        self._stale = False
        self.request_time: datetime | None = None
        self.response_time: datetime | None = None

    @classmethod
    def from_bytes(
        cls,
        status: int,
        data: bytes,
        headers: Mapping[str, str] | HTTPHeaderDict | None = None,
    ) -> "Response":
        return cls(status, io.BytesIO(data), headers)

    @classmethod
    def from_http(cls, response: HttpResponse) -> "Response":
        """Wrap a live ``requests`` response, buffering its body."""

        raw_headers = getattr(getattr(response, "raw", None), "headers", None)
        if isinstance(raw_headers, HTTPHeaderDict):
            headers = raw_headers.copy()
        else:
            headers = HTTPHeaderDict(response.headers or {})
        # Content-Encoding stays in the headers and requests has already decoded
        # the body, so drop the encoding to keep the stored pair consistent.
        if headers.get("Content-Encoding"):
            headers.discard("Content-Encoding")
            headers.discard("Content-Length")
        entity = cls(response.status_code, io.BytesIO(response.content or b""), headers)
        entity.response_time = clock()
        return entity

    def __enter__(self) -> "Response":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def read(self, size: int = -1) -> bytes:
        return self._body.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._body.seek(offset, whence)

    def tell(self) -> int:
        return self._body.tell()

    def close(self) -> None:
        self._body.close()

    @property
    def closed(self) -> bool:
        return self._body.closed

    @property
    def body(self) -> BinaryIO:
        return self._body

    @property
    def status(self) -> int:
        return self._status

    @property
    def headers(self) -> HTTPHeaderDict:
        return self._headers

    def is_non_error_status(self) -> bool:
        return 200 <= self._status < 400

    def is_stale(self) -> bool:
        return self._stale

    def mark_stale(self) -> None:
        self._stale = True

    def last_modified(self) -> datetime | None:
        """Return the ``Last-Modified`` time, or None if absent or unparsable."""

        value = self._headers.get("Last-Modified")
        if not value:
            return None
        try:
            return parse_http_date(value)
        except ValueError:
            return None

    def expires(self) -> datetime | None:
        """Return the ``Expires`` time; an unparsable value raises ValueError."""

        value = self._headers.get("Expires")
        if not value:
            return None
        return parse_http_date(value)

    def date_after(self, reference: datetime) -> bool:
        value = self._headers.get("Date")
        if not value:
            return False
        try:
            date = parse_http_date(value)
        except ValueError:
            return False
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)
        return date > reference

    def has_validators(self) -> bool:
        return bool(self._headers.get("Last-Modified") or self._headers.get("ETag"))

    def via(self) -> str:
        return f"1.1 {VIA_PSEUDONYM}"

    def __repr__(self) -> str:
        return f"<Response [{self._status}]{' stale' if self._stale else ''}>"


__all__ = ["Response", "VIA_PSEUDONYM", "clock", "parse_http_date", "utcnow"]
