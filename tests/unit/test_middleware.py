"""
Unit tests for middleware helpers and the access log.
"""

import json
import logging

import pytest

from conftest import make_request
from tinyserve.middleware import (
    Middleware,
    FunctionMiddleware,
    LoggingMiddleware,
    RequestLog,
    as_middleware,
    function_middleware,
)


def run(middleware, request, response, downstream=None):
    """Call a middleware with a next() that runs ``downstream``."""
    def next():
        if downstream is not None:
            downstream(request, response)
    middleware(request, response, next)


def reply_zd(request, response):
    response.write_head(200, {"Content-Type": "text/plain"})
    response.end("zd")


class TestFunctionMiddleware:
    """Tests for wrapping plain functions."""

    def test_three_arguments_gets_next(self, make_response):
        """Test that a (request, response, next) function receives next."""
        called = []

        def mw(request, response, next):
            next()

        wrapped = FunctionMiddleware(mw)
        assert wrapped.takes_next is True
        run(wrapped, make_request("GET", "/"), make_response(), lambda rq, rs: called.append(1))
        assert called == [1]

    def test_two_arguments_never_continues(self, make_response):
        """Test that a (request, response) function is called without next."""
        called = []

        def mw(request, response):
            response.end("stop")

        wrapped = FunctionMiddleware(mw)
        assert wrapped.takes_next is False
        response = make_response()
        run(wrapped, make_request("GET", "/"), response, lambda rq, rs: called.append(1))
        assert called == []
        assert response.finished

    def test_varargs_gets_next(self):
        """Test that *args functions are treated as taking next."""
        assert FunctionMiddleware(lambda *args: None).takes_next is True

    def test_name(self):
        """Test middleware names for logging."""
        def audit(request, response, next):
            next()

        assert FunctionMiddleware(audit).name == "audit"
        assert FunctionMiddleware(audit, name="custom").name == "custom"
        assert LoggingMiddleware().name == "LoggingMiddleware"

    def test_as_middleware(self):
        """Test normalization of use() arguments."""
        logging_mw = LoggingMiddleware()
        assert as_middleware(logging_mw) is logging_mw
        assert isinstance(as_middleware(lambda rq, rs, nx: None), FunctionMiddleware)
        with pytest.raises(TypeError):
            as_middleware(42)

    def test_function_middleware_decorator(self):
        """Test the decorator form."""
        @function_middleware
        def stamp(request, response, next):
            next()

        assert isinstance(stamp, Middleware)
        assert stamp.name == "stamp"

    def test_abstract_base(self):
        """Test that Middleware cannot be instantiated directly."""
        with pytest.raises(TypeError):
            Middleware()


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    def test_text_log_line(self, make_response, caplog):
        """Test one access line per request with the final status."""
        request = make_request("GET", "/ilia")
        request.client_address = ("10.0.0.1", 5555)

        with caplog.at_level(logging.INFO, logger="tinyserve.access"):
            run(LoggingMiddleware(), request, make_response(), reply_zd)

        records = [r for r in caplog.records if r.name == "tinyserve.access"]
        assert len(records) == 1
        message = records[0].getMessage()
        assert message.startswith("10.0.0.1 - - [")
        assert '"GET /ilia" 200' in message

    def test_json_log_line(self, make_response, caplog):
        """Test JSON formatted access lines."""
        with caplog.at_level(logging.INFO, logger="tinyserve.access"):
            run(LoggingMiddleware(log_format="json"), make_request("POST", "/x"), make_response(), reply_zd)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["method"] == "POST"
        assert entry["url"] == "/x"
        assert entry["status_code"] == 200
        assert entry["bytes_sent"] > 0

    def test_unfinished_response_logged_with_dash(self, make_response, caplog):
        """Test that a halted, unanswered request logs '-' as the status."""
        with caplog.at_level(logging.INFO, logger="tinyserve.access"):
            run(LoggingMiddleware(), make_request("GET", "/"), make_response())

        assert '"GET /" - 0' in caplog.records[-1].getMessage()

    def test_request_id_header(self, make_response):
        """Test that X-Request-ID is set before the chain continues."""
        seen = []
        response = make_response()

        run(LoggingMiddleware(), make_request("GET", "/"), response,
            lambda rq, rs: seen.append(rs.get_header("X-Request-ID")))

        assert seen[0] is not None
        assert len(seen[0]) == 8

    def test_request_id_disabled(self, make_response):
        """Test include_request_id=False."""
        response = make_response()
        run(LoggingMiddleware(include_request_id=False), make_request("GET", "/"), response)
        assert response.get_header("X-Request-ID") is None

    def test_skip_paths(self, make_response, caplog):
        """Test that skipped paths are not logged but still continue."""
        called = []
        with caplog.at_level(logging.INFO, logger="tinyserve.access"):
            run(LoggingMiddleware(skip_paths=["/health"]), make_request("GET", "/health"),
                make_response(), lambda rq, rs: called.append(1))

        assert called == [1]
        assert not [r for r in caplog.records if r.name == "tinyserve.access"]

    def test_downstream_error_logged_and_reraised(self, make_response, caplog):
        """Test that failures are logged and propagate."""
        def explode(request, response):
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="tinyserve.access"):
            with pytest.raises(RuntimeError):
                run(LoggingMiddleware(), make_request("GET", "/"), make_response(), explode)

        assert "Request failed: GET / - RuntimeError: boom" in caplog.text

    def test_invalid_format(self):
        """Test that unknown formats are rejected."""
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")


class TestRequestLog:
    """Tests for RequestLog."""

    def test_to_dict_rounds_duration(self):
        """Test duration rounding in the dict form."""
        entry = RequestLog("abc", "GET", "/", "1.2.3.4", 200, 10, 1.23456, "now")
        assert entry.to_dict()["duration_ms"] == 1.23
