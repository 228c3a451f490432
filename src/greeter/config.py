"""
=============================================================================
SERVICE CONFIGURATION
=============================================================================

Centralized configuration for the greeter service.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m greeter --port 50052                            │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── GREETER_PORT=50052 python -m greeter                      │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The three knobs that shape the service's behaviour under load are:

    workers          Fixed number of handler slots. Calls beyond this
                     queue up instead of spawning more threads.
    drain_timeout    How long a shutdown waits for in-flight calls.
    port             Where the gRPC endpoint listens (0 = ephemeral).

=============================================================================
"""

import os
from dataclasses import dataclass


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

# (field, environment variable, parser)
ENV_VARS = (
    ("host", "GREETER_HOST", str),
    ("port", "GREETER_PORT", int),
    ("workers", "GREETER_WORKERS", int),
    ("drain_timeout", "GREETER_DRAIN_TIMEOUT", float),
    ("force_stop_timeout", "GREETER_FORCE_STOP_TIMEOUT", float),
    ("log_level", "GREETER_LOG_LEVEL", str),
    ("log_format", "GREETER_LOG_FORMAT", str),
)


@dataclass
class ServiceConfig:
    """
    Configuration for the greeter service.

    Development:
        ServiceConfig(host="127.0.0.1", port=0, log_level="DEBUG")

    Production:
        ServiceConfig(host="[::]", port=50051, workers=8, drain_timeout=30.0)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "[::]"
    """
    Address to bind to.
    - "[::]" - All interfaces, IPv4 and IPv6
    - "127.0.0.1" - Localhost only (tests, development)
    """

    port: int = 50051
    """
    Port to listen on. 0 lets the OS pick a free port; the bound
    port is reported by LifecycleController.start().
    """

    reuse_port: bool = False
    """
    Whether gRPC may set SO_REUSEPORT. Left off so that a port held by
    another process is a bind failure instead of a shared listener.
    """

    max_message_length: int = 4 * 1024 * 1024
    """Maximum size of a single request or response message in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKER POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    workers: int = 2
    """
    Number of worker slots. Fixed for the life of the process:
    excess calls wait in a FIFO queue.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    drain_timeout: float = 30.0
    """
    Seconds a graceful shutdown waits for queued and in-flight calls.
    Work still pending afterwards is abandoned.
    """

    force_stop_timeout: float = 5.0
    """
    Seconds to wait for the transport to release the port once draining
    has finished (or given up).
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' for humans, 'json' for log aggregators."""

    @property
    def address(self) -> str:
        """The host:port string handed to the gRPC server."""
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GREETER_HOST                Bind address (default: [::])
        GREETER_PORT                Listening port (default: 50051)
        GREETER_WORKERS             Worker slots (default: 2)
        GREETER_DRAIN_TIMEOUT       Drain deadline in seconds (default: 30)
        GREETER_FORCE_STOP_TIMEOUT  Transport teardown wait (default: 5)
        GREETER_LOG_LEVEL           Logging level (default: INFO)
        GREETER_LOG_FORMAT          text or json (default: text)

        =====================================================================

        Unset variables keep the dataclass defaults.

        Raises:
            ValueError: If a variable cannot be parsed (e.g. GREETER_PORT=abc).
        """
        overrides = {}
        for field_name, env_name, parse in ENV_VARS:
            raw = os.getenv(env_name)
            if raw is None:
                continue
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                raise ValueError(
                    f"Invalid {env_name}={raw!r}: expected {parse.__name__}"
                ) from None
        return cls(**overrides)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad value fails the process before
        anything is bound.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.drain_timeout <= 0:
            raise ValueError("drain_timeout must be > 0")

        if self.force_stop_timeout <= 0:
            raise ValueError("force_stop_timeout must be > 0")

        if self.max_message_length < 1024:
            raise ValueError("max_message_length must be >= 1024")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    def grpc_options(self) -> list:
        """Channel arguments for grpc.server()."""
        return [
            ("grpc.so_reuseport", 1 if self.reuse_port else 0),
            ("grpc.max_send_message_length", self.max_message_length),
            ("grpc.max_receive_message_length", self.max_message_length),
        ]
