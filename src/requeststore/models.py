"""Request values stored and returned by the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urlsplit

from requests import PreparedRequest
from requests import Request as HttpRequest
from urllib3 import HTTPHeaderDict

DEFAULT_PROTOCOL = "HTTP/1.1"


@dataclass(slots=True)
class Request:
    """An HTTP request line plus its header block. Bodies are never stored."""

    method: str
    url: str
    protocol: str = DEFAULT_PROTOCOL
    headers: HTTPHeaderDict = field(default_factory=HTTPHeaderDict)
    explicit_host: str | None = None
    request_time: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, HTTPHeaderDict):
            self.headers = HTTPHeaderDict(self.headers)

    @property
    def host(self) -> str:
        if self.explicit_host:
            return self.explicit_host
        header_host = self.headers.get("Host")
        if header_host:
            return header_host
        return urlsplit(self.url).netloc

    def is_absolute(self) -> bool:
        parts = urlsplit(self.url)
        return bool(parts.scheme and parts.netloc)

    @classmethod
    def from_prepared(cls, prepared: PreparedRequest) -> "Request":
        return cls(
            method=prepared.method or "GET",
            url=prepared.url or "",
            headers=HTTPHeaderDict(prepared.headers or {}),
        )

    def prepare(self) -> PreparedRequest:
        """Build a :class:`requests.PreparedRequest` for sending."""

        headers = {name: ", ".join(self.headers.getlist(name)) for name in self.headers}
        return HttpRequest(self.method, self.url, headers=headers).prepare()


def coerce_request(request: Request | PreparedRequest | HttpRequest) -> Request:
    """Accept either a stored request value or a ``requests`` request object."""

    if isinstance(request, Request):
        return request
    if isinstance(request, HttpRequest):
        request = request.prepare()
    if isinstance(request, PreparedRequest):
        return Request.from_prepared(request)
    raise TypeError(f"Unsupported request type: {type(request).__name__}")


__all__ = ["DEFAULT_PROTOCOL", "Request", "coerce_request"]
