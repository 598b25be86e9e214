"""Byte form of stored request and response-header records.

A request record is::

    METHOD SP ABSOLUTE-URL SP PROTOCOL CRLF
    Name: value CRLF
    ...
    CRLF
    CRLF

and a response-header record swaps the first line for
``HTTP/1.1 SP STATUS SP REASON CRLF``. The trailing CRLF after the header
block lets a reader find the end of an empty header block.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Mapping

from urllib3 import HTTPHeaderDict
from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from .errors import MalformedRecordError
from .models import Request

CRLF = b"\r\n"
RECORD_ENCODING = "utf-8"
RESPONSE_PROTOCOL = "HTTP/1.1"
PLACEHOLDER_URL = "http://dummy"
# Filler used by copy_headers when the source carries no Content-Type.
BLANK_CONTENT_TYPE = "    "
_NEWLINES = re.compile(r"\r\n|\r|\n")


@dataclass(slots=True)
class ResponseHeader:
    """Status code and header block of a stored response."""

    status_code: int
    headers: HTTPHeaderDict = field(default_factory=HTTPHeaderDict)


def placeholder_request() -> Request:
    return Request(method="GET", url=PLACEHOLDER_URL)


def reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def absolute_url(request: Request) -> str:
    """Return the request URL, rewritten against its host when relative.

    A relative URL without any host cannot be made absolute and raises
    :class:`MalformedRecordError`.
    """

    if request.is_absolute():
        return request.url
    if not request.host:
        raise MalformedRecordError(f"relative URL without a host: {request.url}", line=request.url)
    target = request.url if request.url.startswith("/") else f"/{request.url}"
    return f"http://{request.host}{target}"


def encode_headers(headers: Mapping[str, str] | HTTPHeaderDict) -> bytes:
    """Serialize a header block including its terminating blank line."""

    block = HTTPHeaderDict(headers)
    lines: list[str] = []
    for name in sorted(block, key=str.lower):
        for value in block.getlist(name):
            cleaned = _NEWLINES.sub(" ", value).strip()
            lines.append(f"{name}: {cleaned}\r\n")
    lines.append("\r\n")
    return "".join(lines).encode(RECORD_ENCODING)


def encode_request(request: Request) -> bytes:
    url = absolute_url(request)
    first_line = f"{request.method} {url} {request.protocol}\r\n".encode(RECORD_ENCODING)
    return first_line + encode_headers(request.headers) + CRLF


def encode_response_header(status_code: int, headers: Mapping[str, str] | HTTPHeaderDict) -> bytes:
    first_line = f"{RESPONSE_PROTOCOL} {status_code} {reason_phrase(status_code)}\r\n".encode(RECORD_ENCODING)
    return first_line + encode_headers(headers) + CRLF


def encode_header_record(header: ResponseHeader) -> bytes:
    return encode_response_header(header.status_code, header.headers)


def decode_request(data: bytes) -> Request:
    """Parse a request record.

    Raises :class:`MalformedRecordError` with a placeholder request attached.
    """

    lines = _Lines(data)
    try:
        line = lines.next_line()
        fields = line.split(" ", 2)
        if len(fields) < 3 or not all(fields):
            raise MalformedRecordError(f"malformed HTTP request line: {line}", line=line)
        method, url, protocol = fields
        try:
            parsed = parse_url(url)
        except LocationParseError as exc:
            raise MalformedRecordError(f"malformed HTTP request URL: {url}", line=line) from exc
        if not parsed.scheme or not parsed.host:
            raise MalformedRecordError(f"malformed HTTP request URL: {url}", line=line)
        headers = lines.read_header_block()
    except MalformedRecordError as exc:
        exc.placeholder = placeholder_request()
        raise
    return Request(method=method, url=url, protocol=protocol, headers=headers)


def decode_response_header(data: bytes) -> ResponseHeader:
    lines = _Lines(data)
    line = lines.next_line()
    fields = line.split(" ", 2)
    if len(fields) < 2:
        raise MalformedRecordError(f"malformed HTTP response: {line}", line=line)
    try:
        status_code = int(fields[1])
    except ValueError as exc:
        raise MalformedRecordError(f"malformed HTTP status code: {fields[1]}", line=line) from exc
    return ResponseHeader(status_code=status_code, headers=lines.read_header_block())


def copy_headers(source: Mapping[str, str] | HTTPHeaderDict, destination: HTTPHeaderDict) -> None:
    """Replace every header in *destination* with those from *source*."""

    destination.clear()
    destination.extend(HTTPHeaderDict(source))
    if not destination.get("Content-Type"):
        destination.add("Content-Type", BLANK_CONTENT_TYPE)


class _Lines:
    """Iterates CRLF (or bare LF) terminated lines of a record."""

    def __init__(self, data: bytes) -> None:
        self._lines = data.decode(RECORD_ENCODING, errors="surrogateescape").split("\n")
        # The final element is whatever follows the last newline.
        self._terminated = len(self._lines) - 1
        self._index = 0

    def next_line(self) -> str:
        if self._index >= self._terminated:
            raise MalformedRecordError("unexpected end of record")
        line = self._lines[self._index]
        self._index += 1
        return line[:-1] if line.endswith("\r") else line

    def peek_continuation(self) -> bool:
        if self._index >= self._terminated:
            return False
        return self._lines[self._index][:1] in (" ", "\t")

    def read_header_block(self) -> HTTPHeaderDict:
        headers = HTTPHeaderDict()
        while True:
            line = self.next_line()
            if line == "":
                return headers
            if line[:1] in (" ", "\t"):
                raise MalformedRecordError(f"malformed MIME header initial line: {line}", line=line)
            name, sep, value = line.partition(":")
            name = name.strip()
            if not sep or not name or name != line[: len(name)]:
                raise MalformedRecordError(f"malformed MIME header line: {line}", line=line)
            parts = [value.strip()]
            while self.peek_continuation():
                parts.append(self.next_line().strip())
            headers.add(name, " ".join(part for part in parts if part))


__all__ = [
    "BLANK_CONTENT_TYPE",
    "PLACEHOLDER_URL",
    "ResponseHeader",
    "absolute_url",
    "copy_headers",
    "decode_request",
    "decode_response_header",
    "encode_header_record",
    "encode_headers",
    "encode_request",
    "encode_response_header",
    "placeholder_request",
    "reason_phrase",
]
