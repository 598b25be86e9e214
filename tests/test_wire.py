from __future__ import annotations

import unittest

from urllib3 import HTTPHeaderDict

from requeststore.errors import MalformedRecordError
from requeststore.models import Request
from requeststore.wire import (
    BLANK_CONTENT_TYPE,
    PLACEHOLDER_URL,
    copy_headers,
    decode_request,
    decode_response_header,
    encode_request,
    encode_response_header,
)


class EncodeRequestTest(unittest.TestCase):
    def test_exact_bytes(self) -> None:
        request = Request("GET", "http://example.com/a", headers={"Host": "example.com"})
        self.assertEqual(
            encode_request(request),
            b"GET http://example.com/a HTTP/1.1\r\nHost: example.com\r\n\r\n\r\n",
        )

    def test_headers_written_in_sorted_order(self) -> None:
        headers = HTTPHeaderDict()
        headers.add("X-Zeta", "1")
        headers.add("Accept", "text/html")
        headers.add("Accept", "application/json")
        data = encode_request(Request("GET", "http://example.com/", headers=headers))
        self.assertEqual(
            data,
            b"GET http://example.com/ HTTP/1.1\r\n"
            b"Accept: text/html\r\n"
            b"Accept: application/json\r\n"
            b"X-Zeta: 1\r\n"
            b"\r\n\r\n",
        )

    def test_relative_url_rewritten_with_host(self) -> None:
        request = Request("GET", "/a?b=1", headers={"Host": "example.com"})
        first_line = encode_request(request).split(b"\r\n", 1)[0]
        self.assertEqual(first_line, b"GET http://example.com/a?b=1 HTTP/1.1")

    def test_relative_url_prefers_explicit_host(self) -> None:
        request = Request("GET", "/a", headers={"Host": "ignored.example"}, explicit_host="example.com:8080")
        first_line = encode_request(request).split(b"\r\n", 1)[0]
        self.assertEqual(first_line, b"GET http://example.com:8080/a HTTP/1.1")

    def test_relative_url_without_host_is_rejected(self) -> None:
        with self.assertRaises(MalformedRecordError) as ctx:
            encode_request(Request("GET", "/a"))
        self.assertEqual(ctx.exception.line, "/a")

    def test_newlines_in_values_are_flattened(self) -> None:
        request = Request("GET", "http://example.com/", headers={"X-Note": "one\r\ntwo"})
        self.assertIn(b"X-Note: one two\r\n", encode_request(request))


class DecodeRequestTest(unittest.TestCase):
    def test_round_trip(self) -> None:
        headers = HTTPHeaderDict()
        headers.add("Host", "example.com")
        headers.add("Accept", "text/html")
        headers.add("Accept", "application/json")
        original = Request("POST", "https://example.com/submit?x=1", "HTTP/1.0", headers)

        decoded = decode_request(encode_request(original))

        self.assertEqual(decoded.method, "POST")
        self.assertEqual(decoded.url, "https://example.com/submit?x=1")
        self.assertEqual(decoded.protocol, "HTTP/1.0")
        self.assertEqual(decoded.headers.getlist("accept"), ["text/html", "application/json"])
        self.assertEqual(decoded.headers, original.headers)

    def test_round_trip_without_headers(self) -> None:
        decoded = decode_request(encode_request(Request("DELETE", "http://example.com/x")))
        self.assertEqual((decoded.method, decoded.url, decoded.protocol), ("DELETE", "http://example.com/x", "HTTP/1.1"))
        self.assertEqual(len(decoded.headers), 0)

    def test_folded_header_lines(self) -> None:
        decoded = decode_request(b"GET http://example.com/ HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n\r\n")
        self.assertEqual(decoded.headers["X-Long"], "first second")

    def test_single_field_line_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError) as ctx:
            decode_request(b"GARBAGE\r\n\r\n")
        self.assertEqual(ctx.exception.line, "GARBAGE")
        self.assertIsNotNone(ctx.exception.placeholder)
        self.assertEqual(ctx.exception.placeholder.url, PLACEHOLDER_URL)

    def test_missing_protocol_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError):
            decode_request(b"GET http://example.com/\r\n\r\n")

    def test_relative_url_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError) as ctx:
            decode_request(b"GET /a HTTP/1.1\r\n\r\n")
        self.assertEqual(ctx.exception.placeholder.method, "GET")

    def test_truncated_header_block_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError):
            decode_request(b"GET http://example.com/ HTTP/1.1\r\nHost: example.com\r\n")

    def test_header_without_colon_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError):
            decode_request(b"GET http://example.com/ HTTP/1.1\r\nnot a header\r\n\r\n")

    def test_empty_record_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError):
            decode_request(b"")


class ResponseHeaderCodecTest(unittest.TestCase):
    def test_exact_bytes(self) -> None:
        self.assertEqual(
            encode_response_header(200, {"Content-Type": "text/plain"}),
            b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n\r\n\r\n",
        )

    def test_reason_phrase_from_status(self) -> None:
        self.assertTrue(encode_response_header(404, {}).startswith(b"HTTP/1.1 404 Not Found\r\n"))

    def test_unknown_status_has_empty_reason(self) -> None:
        data = encode_response_header(599, {})
        self.assertTrue(data.startswith(b"HTTP/1.1 599 \r\n"))
        self.assertEqual(decode_response_header(data).status_code, 599)

    def test_round_trip(self) -> None:
        headers = HTTPHeaderDict()
        headers.add("Set-Cookie", "a=1")
        headers.add("Set-Cookie", "b=2")
        headers.add("ETag", '"abc"')
        decoded = decode_response_header(encode_response_header(304, headers))
        self.assertEqual(decoded.status_code, 304)
        self.assertEqual(decoded.headers.getlist("set-cookie"), ["a=1", "b=2"])
        self.assertEqual(decoded.headers, headers)

    def test_non_numeric_status_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError) as ctx:
            decode_response_header(b"HTTP/1.1 abc OK\r\n\r\n")
        self.assertIn("abc", str(ctx.exception))

    def test_single_field_is_malformed(self) -> None:
        with self.assertRaises(MalformedRecordError):
            decode_response_header(b"HTTP/1.1\r\n\r\n")

    def test_two_fields_are_enough(self) -> None:
        self.assertEqual(decode_response_header(b"HTTP/1.1 204\r\n\r\n").status_code, 204)


class CopyHeadersTest(unittest.TestCase):
    def test_replaces_destination(self) -> None:
        destination = HTTPHeaderDict({"X-Old": "1"})
        copy_headers({"X-New": "2", "Content-Type": "text/html"}, destination)
        self.assertNotIn("X-Old", destination)
        self.assertEqual(destination["x-new"], "2")
        self.assertEqual(destination["content-type"], "text/html")

    def test_fills_missing_content_type(self) -> None:
        destination = HTTPHeaderDict()
        copy_headers({"X-New": "2"}, destination)
        self.assertEqual(destination["Content-Type"], BLANK_CONTENT_TYPE)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
