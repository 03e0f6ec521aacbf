"""
Unit tests for HTTP request parsing.
"""

import pytest

from tinyserve.http.request import IncomingRequest, RequestParser, HTTPParseError


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.url == "/ilia?debug=1"
        assert request.path == "/ilia"
        assert request.query == "debug=1"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that header names are lower-cased."""
        request = RequestParser().parse(sample_get_request)

        assert request.headers["host"] == "localhost:3000"
        assert request.get_header("User-Agent") == "pytest"
        assert request.get_header("missing", "default") == "default"
        assert request.is_keep_alive is True

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """Test parsing a POST request with a body."""
        request = RequestParser().parse(sample_post_request)

        assert request.method == "POST"
        assert request.body == b"name=zd"
        assert request.content_length == 7
        assert request.is_keep_alive is False

    def test_any_method_token_accepted(self):
        """Test that unknown methods reach the dispatcher instead of failing here."""
        request = RequestParser().parse(b"PATCH /ilia HTTP/1.1\r\nHost: t\r\n\r\n")
        assert request.method == "PATCH"

    def test_repeated_headers_are_folded(self):
        """Test that repeated headers are joined with a comma."""
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\naccept: b\r\n\r\n"
        request = RequestParser().parse(raw)
        assert request.headers["accept"] == "a, b"

    def test_body_trimmed_to_content_length(self):
        """Test that bytes beyond Content-Length are not part of the body."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 2\r\n\r\nabcdef"
        assert RequestParser().parse(raw).body == b"ab"

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_lowercase_method_rejected(self):
        """Test that the method token must be upper case."""
        with pytest.raises(HTTPParseError):
            RequestParser().parse(b"get / HTTP/1.1\r\n\r\n")

    def test_unsupported_version(self):
        """Test that HTTP/2.0 in a request line gives 505."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_missing_header_terminator(self):
        """Test that a request without CRLFCRLF is rejected."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"GET / HTTP/1.1\r\nHost: test\r\n")

        assert exc_info.value.status_code == 400

    def test_invalid_header_line(self):
        """Test that a header line without a colon is rejected."""
        with pytest.raises(HTTPParseError):
            RequestParser().parse(b"GET / HTTP/1.1\r\nnot a header\r\n\r\n")

    def test_truncated_body(self):
        """Test that a body shorter than Content-Length is rejected."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")

        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        """Test that garbage or negative Content-Length is rejected."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"
        with pytest.raises(HTTPParseError):
            RequestParser().parse(raw)

    def test_request_too_large(self):
        """Test that oversized requests give 413."""
        parser = RequestParser(max_request_size=32)
        raw = b"GET / HTTP/1.1\r\nX-Padding: " + b"x" * 64 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413


class TestIncomingRequest:
    """Tests for IncomingRequest."""

    def test_path_derived_from_url(self):
        """Test that path is decoded and query split off."""
        request = IncomingRequest(method="GET", url="/hello%20world?x=1")
        assert request.path == "/hello world"
        assert request.query == "x=1"

    def test_empty_path_defaults_to_root(self):
        """Test that an absolute-form URL with no path maps to '/'."""
        request = IncomingRequest(method="GET", url="http://example.com")
        assert request.path == "/"

    def test_keep_alive_http10(self):
        """Test HTTP/1.0 defaults to close."""
        request = IncomingRequest(method="GET", url="/", version="HTTP/1.0")
        assert request.is_keep_alive is False

        request = IncomingRequest(
            method="GET", url="/", version="HTTP/1.0",
            headers={"connection": "keep-alive"},
        )
        assert request.is_keep_alive is True

    def test_keep_alive_http11_close(self):
        """Test HTTP/1.1 with Connection: close."""
        request = IncomingRequest(method="GET", url="/", headers={"connection": "close"})
        assert request.is_keep_alive is False

    def test_content_length_garbage_is_zero(self):
        """Test that content_length tolerates a bad header on a hand-built request."""
        request = IncomingRequest(method="GET", url="/", headers={"content-length": "x"})
        assert request.content_length == 0
