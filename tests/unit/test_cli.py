"""
Unit tests for the command-line entry point.
"""

import pytest

from conftest import make_request, split_response
from tinyserve.__main__ import build_parser, config_from_args, ilia


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TINYSERVE_HOST", "TINYSERVE_PORT", "TINYSERVE_WORKERS",
                 "TINYSERVE_TIMEOUT", "TINYSERVE_LOG_LEVEL", "TINYSERVE_LOG_FORMAT",
                 "TINYSERVE_STRICT_CHAIN"):
        monkeypatch.delenv(name, raising=False)


class TestCLI:
    """Tests for argument handling."""

    def test_defaults(self):
        """Test the demo defaults."""
        config = config_from_args(build_parser().parse_args([]))

        assert config.host == "127.0.0.1"
        assert config.port == 3000
        assert config.log_format == "text"
        assert config.strict_middleware_chain is False

    def test_flags(self):
        """Test that flags land in the configuration."""
        args = build_parser().parse_args([
            "-H", "0.0.0.0", "-p", "8000", "-w", "2",
            "-l", "DEBUG", "--log-format", "json", "--strict-chain",
        ])
        config = config_from_args(args)

        assert (config.host, config.port) == ("0.0.0.0", 8000)
        assert (config.min_workers, config.max_workers) == (2, 2)
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.strict_middleware_chain is True

    def test_env_then_flags(self, monkeypatch):
        """Test that the environment is read and flags override it."""
        monkeypatch.setenv("TINYSERVE_HOST", "10.0.0.1")
        monkeypatch.setenv("TINYSERVE_PORT", "9999")
        monkeypatch.setenv("TINYSERVE_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("TINYSERVE_LOG_FORMAT", "json")

        config = config_from_args(build_parser().parse_args(["-l", "WARNING"]))

        assert config.host == "10.0.0.1"
        assert config.port == 9999
        assert config.log_format == "json"
        assert config.log_level == "WARNING"

    def test_port_flag_beats_env(self, monkeypatch):
        """Test that --port overrides TINYSERVE_PORT."""
        monkeypatch.setenv("TINYSERVE_PORT", "9999")
        monkeypatch.setenv("TINYSERVE_LOG_FORMAT", "json")

        config = config_from_args(build_parser().parse_args(["-p", "8000", "--log-format", "text"]))

        assert config.port == 8000
        assert config.log_format == "text"

    def test_invalid_port(self):
        """Test that an out-of-range port is rejected."""
        with pytest.raises(ValueError):
            config_from_args(build_parser().parse_args(["-p", "70000"]))

    def test_version(self, capsys):
        """Test --version."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])
        assert "tinyserve 1.0.0" in capsys.readouterr().out

    def test_demo_handler(self, make_response, sent):
        """Test the /ilia demo handler."""
        ilia(make_request("GET", "/ilia"), make_response())
        status, headers, body = split_response(sent[0])
        assert (status, body) == (200, b"zd")
        assert headers["content-type"] == "text/plain"
