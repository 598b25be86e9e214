from __future__ import annotations

import io
import unittest
from unittest import mock

from requests import PreparedRequest
from requests import Response as HttpResponse
from requests.exceptions import ConnectionError, RequestException
from requests.structures import CaseInsensitiveDict

from requeststore.errors import FoundInStore, FoundInStorePrivate, NotFoundInStore
from requeststore.exclusion import MarkerExclusion
from requeststore.models import Request
from requeststore.store import DEFAULT_TIMEOUT, Store

URL = "http://example.com/a"


def http_response(status: int = 200, body: bytes = b"hello", headers: dict[str, str] | None = None) -> HttpResponse:
    response = HttpResponse()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {"Content-Type": "text/plain"})
    response.raw = io.BytesIO(body)
    response._content = body
    return response


class _RecordingSession:
    def __init__(self, response: HttpResponse | None = None, error: Exception | None = None) -> None:
        self.response = response or http_response()
        self.error = error
        self.sent: list[tuple[PreparedRequest, bool, object]] = []
        self.closed = False

    def send(self, prepared: PreparedRequest, allow_redirects: bool = True, timeout: object = None):
        self.sent.append((prepared, allow_redirects, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self) -> None:
        self.closed = True


class FetchAndStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.session = _RecordingSession()
        self.store = Store.memory(hash_algorithm="plain", client=self.session)

    def test_stores_under_explicit_key(self) -> None:
        self.store.fetch_and_store_response(Request("GET", URL), "k")

        with self.store.retrieve_response("k") as response:
            self.assertEqual(response.status, 200)
            self.assertEqual(response.read(), b"hello")
            self.assertEqual(response.headers["content-type"], "text/plain")

        prepared, allow_redirects, timeout = self.session.sent[0]
        self.assertEqual(prepared.url, URL)
        self.assertFalse(allow_redirects)
        self.assertEqual(timeout, DEFAULT_TIMEOUT)

    def test_dummy_key_uses_request_url(self) -> None:
        for key in ("dummy", "DUMMY"):
            with self.subTest(key=key):
                store = Store.memory(hash_algorithm="plain", client=_RecordingSession())
                store.fetch_and_store_response(Request("GET", URL), key)
                self.assertEqual(store.retrieve_response_header(URL).status_code, 200)
                with self.assertRaises(NotFoundInStore):
                    store.retrieve_response_header(key)

    def test_dummy_key_keeps_caller_url(self) -> None:
        self.store.fetch_and_store_response(Request("GET", "http://example.com"), "dummy")

        self.assertEqual(self.session.sent[0][0].url, "http://example.com/")
        self.assertEqual(self.store.retrieve_response_header("http://example.com").status_code, 200)
        with self.assertRaises(NotFoundInStore):
            self.store.retrieve_response_header("http://example.com/")

    def test_accepts_prepared_request(self) -> None:
        prepared = Request("GET", URL, headers={"Accept": "text/html"}).prepare()
        self.store.fetch_and_store_response(prepared, "k")
        self.assertIs(self.session.sent[0][0], prepared)

    def test_transport_error_propagates(self) -> None:
        store = Store.memory(client=_RecordingSession(error=ConnectionError("refused")))
        with self.assertRaises(ConnectionError):
            store.fetch_and_store_response(Request("GET", URL), "k")
        with self.assertRaises(NotFoundInStore):
            store.retrieve_response_header("k")

    def test_redirect_stop_is_stored(self) -> None:
        redirect = http_response(302, b"", {"Location": "http://example.com/b"})
        session = _RecordingSession(error=RequestException("stopped: REDIRECT!!!", response=redirect))
        store = Store.memory(hash_algorithm="plain", client=session)

        store.fetch_and_store_response(Request("GET", URL), "k")

        header = store.retrieve_response_header("k")
        self.assertEqual(header.status_code, 302)
        self.assertEqual(header.headers["location"], "http://example.com/b")

    def test_redirect_marker_without_response_is_raised(self) -> None:
        session = _RecordingSession(error=RequestException("stopped: REDIRECT!!!"))
        store = Store.memory(client=session)
        with self.assertRaises(RequestException):
            store.fetch_and_store_response(Request("GET", URL), "k")

    def test_existing_response_requires_override(self) -> None:
        self.store.fetch_and_store_response(Request("GET", URL), "k")
        self.session.response = http_response(200, b"newer")

        with self.assertRaises(FoundInStore):
            self.store.fetch_and_store_response(Request("GET", URL), "k")

        self.store.fetch_and_store_response(Request("GET", URL), "k", override=True)
        with self.store.retrieve_response("k") as response:
            self.assertEqual(response.read(), b"newer")

    def test_concurrent_write_is_logged_and_raised(self) -> None:
        MarkerExclusion(self.store.fs).acquire("body/v1/k")
        with self.assertLogs("requeststore.store", level="DEBUG") as logs:
            with self.assertRaises(FoundInStorePrivate):
                self.store.fetch_and_store_response(Request("GET", URL), "k")
        self.assertTrue(any("being written" in line for line in logs.output))


class SessionOwnershipTest(unittest.TestCase):
    def test_injected_session_is_left_open(self) -> None:
        session = _RecordingSession()
        with Store.memory(client=session):
            pass
        self.assertFalse(session.closed)

    def test_owned_session_is_created_lazily_and_closed(self) -> None:
        with mock.patch("requeststore.store.Session") as session_cls:
            with Store.memory() as store:
                session_cls.assert_not_called()
                self.assertIs(store.client, session_cls.return_value)
            session_cls.return_value.close.assert_called_once_with()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
