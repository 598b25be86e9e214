"""Command line entry-point for the request store."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from requests.exceptions import RequestException

from .digest import DEFAULT_ALGORITHM, SUPPORTED_ALGORITHMS
from .errors import (
    FoundEmptyInStore,
    FoundInStore,
    FoundInStorePrivate,
    MalformedRecordError,
    NotFoundInStore,
    StoreError,
)
from .filesystem import DiskFileSystem, FileInfo, FileSystem, MemoryFileSystem
from .models import Request
from .response import Response
from .store import Store

DEFAULT_STORE_DIR = Path("data/requeststore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage a store of recorded HTTP exchanges.",
    )
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=DEFAULT_STORE_DIR,
        help="Directory holding the store (default: data/requeststore)",
    )
    parser.add_argument(
        "--hash",
        dest="hash_algorithm",
        default=DEFAULT_ALGORITHM,
        choices=SUPPORTED_ALGORITHMS,
        help="Digest used to derive storage paths from keys (default: sha256).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every store operation.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Fetch a URL and store the exchange.")
    fetch.add_argument("url")
    fetch.add_argument(
        "--key",
        default="dummy",
        help="Key to store under. Defaults to the request URL.",
    )
    fetch.add_argument(
        "--override",
        action="store_true",
        help="Replace records that are already stored.",
    )

    request = subparsers.add_parser("request", help="Print a stored request.")
    request.add_argument("key")

    response = subparsers.add_parser("response", help="Print a stored response header.")
    response.add_argument("key")
    response.add_argument(
        "--body",
        action="store_true",
        help="Write the stored body to stdout after the headers.",
    )

    subparsers.add_parser("list", help="List every stored request.")

    delete = subparsers.add_parser("delete", help="Delete the request and response stored under a key.")
    delete.add_argument("key")
    return parser


def format_request(request: Request) -> str:
    lines = [f"{request.method} {request.url} {request.protocol}"]
    lines.extend(f"{name}: {value}" for name, value in request.headers.items())
    return "\n".join(lines)


def format_response(response: Response) -> str:
    lines = [f"{response.status}"]
    lines.extend(f"{name}: {value}" for name, value in response.headers.items())
    return "\n".join(lines)


def _fetch(store: Store, url: str, key: str, override: bool) -> int:
    request = Request(method="GET", url=url)
    resolved_key = url if key.lower() == "dummy" else key
    try:
        store.store_request(request, resolved_key, override)
    except FoundInStore:
        print(f"Request for {resolved_key} already stored")
    store.fetch_and_store_response(request, resolved_key, override)
    print(f"Stored {url} as {store.hash_key(resolved_key)}")
    return 0


def _show_response(store: Store, key: str, include_body: bool) -> int:
    with store.retrieve_response(key) as response:
        print(format_response(response))
        if include_body:
            print()
            sys.stdout.flush()
            sys.stdout.buffer.write(response.read())
    return 0


def _delete(store: Store, key: str) -> int:
    deleted = 0
    for remove in (store.delete_request, store.delete_response_body, store.delete_response_header):
        try:
            remove(key)
        except NotFoundInStore:
            continue
        deleted += 1
    if not deleted:
        print(f"Nothing stored for {key}", file=sys.stderr)
        return 1
    print(f"Deleted {deleted} record(s) for {key}")
    return 0


def run(args: argparse.Namespace) -> int:
    with Store.disk(args.store_dir, hash_algorithm=args.hash_algorithm) as store:
        if args.command == "fetch":
            return _fetch(store, args.url, args.key, args.override)
        if args.command == "request":
            print(format_request(store.retrieve_request(args.key)))
            return 0
        if args.command == "response":
            return _show_response(store, args.key, args.body)
        if args.command == "list":
            for request in store.retrieve_all_requests():
                print(f"{request.method} {request.url}")
            return 0
        if args.command == "delete":
            return _delete(store, args.key)
    raise ValueError(f"Unknown command {args.command!r}")  # pragma: no cover - argparse guards this


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        status = run(args)
    except FoundInStorePrivate as exc:
        print(f"Write in progress, retry later: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except FoundInStore as exc:
        print(f"Already stored: {exc}")
        status = 0
    except (NotFoundInStore, FoundEmptyInStore) as exc:
        print(f"Not in store: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except StoreError as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(1)
    except RequestException as exc:
        print(f"HTTP error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        raise SystemExit(1)
    if status:
        raise SystemExit(status)


__all__ = [
    "DiskFileSystem",
    "FileInfo",
    "FileSystem",
    "FoundEmptyInStore",
    "FoundInStore",
    "FoundInStorePrivate",
    "MalformedRecordError",
    "MemoryFileSystem",
    "NotFoundInStore",
    "Request",
    "Response",
    "Store",
    "StoreError",
    "build_parser",
    "main",
]
