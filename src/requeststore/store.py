"""Content-addressed store for HTTP requests and responses."""

from __future__ import annotations

import io
import logging
import posixpath
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Mapping

from requests import PreparedRequest, Session
from requests import Request as HttpRequest
from requests.exceptions import RequestException
from urllib3 import HTTPHeaderDict

from . import layout, wire
from .digest import ensure_available, hash_key
from .errors import (
    FoundEmptyInStore,
    FoundInStore,
    FoundInStorePrivate,
    NotFoundInStore,
    StoreError,
)
from .exclusion import Exclusion, MarkerExclusion
from .filesystem import DiskFileSystem, FileInfo, FileSystem, MemoryFileSystem
from .models import Request, coerce_request
from .response import Response

logger = logging.getLogger(__name__)

DUMMY_KEY = "dummy"
# Transport errors carrying this text are redirect stops, not failures.
REDIRECT_MARKER = "REDIRECT!!!"
DEFAULT_TIMEOUT = (15.0, 90.0)


@dataclass(slots=True, frozen=True)
class ResourceClass:
    """Where one kind of record lives and how it is (de)serialized.

    The body class has no codec; its bytes are copied verbatim.
    """

    name: str
    prefix: str
    encode: Callable[[Any], bytes] | None = None
    decode: Callable[[bytes], Any] | None = None


REQUEST = ResourceClass("request", layout.REQUEST_PREFIX, wire.encode_request, wire.decode_request)
HEADER = ResourceClass(
    "header", layout.HEADER_PREFIX, wire.encode_header_record, wire.decode_response_header
)
BODY = ResourceClass("body", layout.BODY_PREFIX)


class Store:
    """Stores requests, response headers and response bodies by key digest.

    Every record class is guarded by its own write-exclusion marker. Readers
    that meet a marker raise :class:`FoundInStorePrivate` instead of returning
    content that may be half written.
    """

    def __init__(
        self,
        fs: FileSystem,
        *,
        hash_algorithm: str | None = None,
        client: Session | None = None,
        exclusion: Exclusion | None = None,
        timeout: tuple[float, float] | None = DEFAULT_TIMEOUT,
    ) -> None:
        self.fs = fs
        self.hash_algorithm = ensure_available(hash_algorithm)
        self._exclusion = exclusion or MarkerExclusion(fs)
        self._session_owner = client is None
        self._client = client
        self._timeout = timeout

    @classmethod
    def memory(cls, **kwargs) -> "Store":
        """Return an ephemeral store kept in memory."""

        return cls(MemoryFileSystem(), **kwargs)

    @classmethod
    def disk(cls, directory: Path | str, **kwargs) -> "Store":
        """Return a store rooted at *directory*, creating it if needed."""

        return cls(DiskFileSystem(directory), **kwargs)

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def close(self) -> None:
        if self._session_owner and self._client is not None:
            self._client.close()
            self._client = None

    @property
    def client(self) -> Session:
        if self._client is None:
            self._client = Session()
        return self._client

    def hash_key(self, key: str) -> str:
        return hash_key(key, self.hash_algorithm)

    def path_for(self, resource: ResourceClass, key: str) -> str:
        return layout.path_for(resource.prefix, self.hash_key(key))

    # Requests

    def store_request(
        self,
        request: Request | PreparedRequest | HttpRequest,
        key: str,
        override: bool = False,
    ) -> None:
        logger.debug("Storing request for key %r", key)
        self._store_record(REQUEST, self.path_for(REQUEST, key), coerce_request(request), override)

    def retrieve_request(self, key: str) -> Request:
        return self.retrieve_request_by_hash(self.hash_key(key))

    def retrieve_request_by_hash(self, digest: str) -> Request:
        return self.retrieve_request_by_path(layout.path_for(REQUEST.prefix, digest))

    def retrieve_request_by_path(self, path: str) -> Request:
        return self._retrieve_record(REQUEST, layout.normalize_path(path))

    def delete_request(self, key: str) -> None:
        self._delete(self.path_for(REQUEST, key))

    def walk_requests(self) -> tuple[list[FileInfo], list[str]]:
        """Return metadata and paths of every committed request record.

        The order follows the filesystem walk; callers must not rely on it.
        """

        infos: list[FileInfo] = []
        paths: list[str] = []
        for path, info in self.fs.walk(layout.class_root(REQUEST.prefix)):
            if info.is_dir or layout.is_marker_path(path):
                continue
            infos.append(info)
            paths.append(path)
        return infos, paths

    def retrieve_all_requests(self) -> list[Request]:
        """Decode every stored request, skipping records that cannot be read."""

        requests: list[Request] = []
        for path in self.walk_requests()[1]:
            try:
                requests.append(self.retrieve_request_by_path(path))
            except (StoreError, OSError) as exc:
                logger.debug("Skipping request record %s: %s", path, exc)
        return requests

    # Responses

    def store_response(self, response: Response, key: str, override: bool = False) -> None:
        """Store the body, then the header record, of *response*."""

        self.store_response_body(response, key, override)
        self.store_response_header(response, key, override)

    def store_response_header(self, response: Response, key: str, override: bool = False) -> None:
        self.store_header(response.status, response.headers, key, override)

    def store_header(
        self,
        status_code: int,
        headers: Mapping[str, str] | HTTPHeaderDict,
        key: str,
        override: bool = False,
    ) -> None:
        header = wire.ResponseHeader(status_code, HTTPHeaderDict(headers))
        self._store_record(HEADER, self.path_for(HEADER, key), header, override)

    def store_response_body(self, body: BinaryIO | Response, key: str, override: bool = False) -> None:
        logger.debug("Storing response body for key %r", key)
        self._store(BODY, self.path_for(BODY, key), body, override)

    def retrieve_response(self, key: str) -> Response:
        return self.retrieve_response_by_hash(self.hash_key(key))

    def retrieve_response_by_hash(self, digest: str) -> Response:
        """Open the stored body and pair it with the stored header record.

        The returned response owns the open body; close it when done.
        """

        body = self._open(layout.path_for(BODY.prefix, digest))
        try:
            header = self.retrieve_response_header_by_hash(digest)
        except Exception:
            body.close()
            raise
        return Response(header.status_code, body, header.headers)

    def retrieve_response_header(self, key: str) -> wire.ResponseHeader:
        return self.retrieve_response_header_by_hash(self.hash_key(key))

    def retrieve_response_header_by_hash(self, digest: str) -> wire.ResponseHeader:
        return self._retrieve_record(HEADER, layout.path_for(HEADER.prefix, digest))

    def retrieve_response_body(self, key: str) -> BinaryIO:
        """Return the open body stream for *key*. The caller must close it."""

        return self._open(self.path_for(BODY, key))

    def delete_response(self, key: str) -> None:
        self.delete_response_body(key)
        self.delete_response_header(key)

    def delete_response_header(self, key: str) -> None:
        self._delete(self.path_for(HEADER, key))

    def delete_response_body(self, key: str) -> None:
        self._delete(self.path_for(BODY, key))

    def delete_by_path(self, path: str) -> None:
        """Remove a single file; a missing file raises :class:`NotFoundInStore`."""

        path = layout.normalize_path(path)
        try:
            self.fs.remove(path)
        except FileNotFoundError:
            raise NotFoundInStore(path) from None

    # Network

    def fetch_and_store_response(
        self,
        request: Request | PreparedRequest | HttpRequest,
        key: str,
        override: bool = False,
    ) -> None:
        """Send *request* and store the response under *key*.

        The key ``dummy`` stands for the request's own URL. Redirects are
        stored as they are rather than followed.
        """

        if isinstance(request, PreparedRequest):
            prepared = request
        else:
            prepared = coerce_request(request).prepare()
        if key.lower() == DUMMY_KEY:
            # The caller's URL, not the one requests normalized while preparing.
            key = request.url or key
        try:
            http_response = self.client.send(prepared, allow_redirects=False, timeout=self._timeout)
        except RequestException as exc:
            if REDIRECT_MARKER not in str(exc) or exc.response is None:
                raise
            http_response = exc.response
        try:
            response = Response.from_http(http_response)
        finally:
            http_response.close()
        try:
            self.store_response(response, key, override)
        except FoundInStorePrivate:
            logger.debug("Response for key %r is being written elsewhere (override=%s)", key, override)
            raise

    # Generic record handling

    def _store_record(self, resource: ResourceClass, path: str, value: Any, override: bool) -> None:
        if resource.encode is None:
            raise TypeError(f"{resource.name} records have no encoder")
        self._store(resource, path, io.BytesIO(resource.encode(value)), override)

    def _store(self, resource: ResourceClass, path: str, source: BinaryIO | Response, override: bool) -> None:
        if not override:
            if self._exclusion.check(path):
                raise FoundInStorePrivate(path)
            if self._size(path) > 0:
                raise FoundInStore(path)

        self._exclusion.acquire(path)
        self.fs.mkdir_all(posixpath.dirname(path))
        with self.fs.open_write(path) as handle:
            shutil.copyfileobj(source, handle)
        try:
            self._exclusion.release(path)
        except OSError as exc:
            logger.warning("Could not release %s marker for %s: %s", resource.name, path, exc)

    def _open(self, path: str) -> BinaryIO:
        """Open committed content at *path* after the marker and size checks."""

        if self._exclusion.check(path):
            raise FoundInStorePrivate(path)
        try:
            handle = self.fs.open_read(path)
        except FileNotFoundError:
            raise NotFoundInStore(path) from None
        try:
            size = self.fs.stat(path).size
        except Exception:
            handle.close()
            raise
        if size == 0:
            handle.close()
            raise FoundEmptyInStore(path)
        return handle

    def _retrieve_record(self, resource: ResourceClass, path: str) -> Any:
        if resource.decode is None:
            raise TypeError(f"{resource.name} records have no decoder")
        with self._open(path) as handle:
            data = handle.read()
        return resource.decode(data)

    def _delete(self, path: str) -> None:
        self.delete_by_path(path)
        marker = layout.marker_path_for(path)
        try:
            self.delete_by_path(marker)
        except NotFoundInStore:
            return
        except OSError as exc:
            logger.warning("Could not remove marker %s: %s", marker, exc)

    def _size(self, path: str) -> int:
        try:
            return self.fs.stat(path).size
        except FileNotFoundError:
            return 0


__all__ = ["BODY", "DUMMY_KEY", "HEADER", "REDIRECT_MARKER", "REQUEST", "ResourceClass", "Store"]
