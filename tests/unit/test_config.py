"""
Unit tests for ServiceConfig and the command-line parser.
"""

import pytest

from greeter.__main__ import build_config, parse_args
from greeter.config import ENV_VARS, ServiceConfig


class TestServiceConfig:
    def test_defaults(self):
        config = ServiceConfig()

        assert config.port == 50051
        assert config.workers == 2
        assert config.drain_timeout == 30.0
        assert config.reuse_port is False
        config.validate()

    def test_address(self):
        assert ServiceConfig(host="127.0.0.1", port=0).address == "127.0.0.1:0"

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"workers": 0},
        {"drain_timeout": 0},
        {"force_stop_timeout": -1.0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"max_message_length": 10},
    ])
    def test_validate_rejects(self, overrides: dict):
        with pytest.raises(ValueError):
            ServiceConfig(**overrides).validate()

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GREETER_HOST", "127.0.0.1")
        monkeypatch.setenv("GREETER_PORT", "6000")
        monkeypatch.setenv("GREETER_WORKERS", "4")
        monkeypatch.setenv("GREETER_DRAIN_TIMEOUT", "2.5")
        monkeypatch.setenv("GREETER_LOG_FORMAT", "json")

        config = ServiceConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 6000
        assert config.workers == 4
        assert config.drain_timeout == 2.5
        assert config.log_format == "json"

    def test_from_env_unset_keeps_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for _, name, _ in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

        assert ServiceConfig.from_env() == ServiceConfig()

    def test_from_env_malformed_value(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GREETER_PORT", "abc")

        with pytest.raises(ValueError, match="GREETER_PORT"):
            ServiceConfig.from_env()

    def test_grpc_options(self):
        options = dict(ServiceConfig().grpc_options())
        assert options["grpc.so_reuseport"] == 0
        assert options["grpc.max_receive_message_length"] == 4 * 1024 * 1024


class TestCommandLine:
    def test_defaults_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GREETER_WORKERS", "3")

        config = build_config(parse_args([]))

        assert config.workers == 3
        assert config.port == 50051

    def test_flags_override_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GREETER_PORT", "6000")

        config = build_config(parse_args([
            "--port", "7000",
            "--workers", "8",
            "--drain-timeout", "5",
            "--log-level", "debug",
            "--log-format", "json",
        ]))

        assert config.port == 7000
        assert config.workers == 8
        assert config.drain_timeout == 5.0
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_malformed_env_exits_with_usage_error(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ):
        """A bad environment value is a usage error even when the flag is given."""
        monkeypatch.setenv("GREETER_PORT", "abc")

        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--port", "1"])

        assert exc_info.value.code == 2
        assert "GREETER_PORT" in capsys.readouterr().err

    def test_invalid_workers_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--workers", "0"])
        assert exc_info.value.code == 2


class TestMain:
    def test_bind_failure_exits_with_1(self, busy_port: int, capsys: pytest.CaptureFixture):
        from greeter.__main__ import main

        code = main(["--host", "127.0.0.1", "--port", str(busy_port), "--log-level", "WARNING"])

        assert code == 1
        assert "Error:" in capsys.readouterr().err
