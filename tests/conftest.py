"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from greeter import LifecycleController, LifecycleState, ServiceConfig
from greeter.client import GreeterClient


@pytest.fixture
def config() -> ServiceConfig:
    """Test service configuration on an ephemeral localhost port."""
    return ServiceConfig(
        host="127.0.0.1",
        port=0,  # Let the OS pick a free port
        workers=2,
        drain_timeout=2.0,
        force_stop_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def busy_port() -> Generator[int, None, None]:
    """A localhost port held open by a plain listening socket."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen()
        yield s.getsockname()[1]


@pytest.fixture
def controller(config: ServiceConfig) -> Generator[LifecycleController, None, None]:
    """A running controller serving say_hello; stopped after the test."""
    ctrl = LifecycleController(config)
    ctrl.start()

    yield ctrl

    if ctrl.state is not LifecycleState.STOPPED:
        ctrl.stop()


@pytest.fixture
def client(controller: LifecycleController) -> Generator[GreeterClient, None, None]:
    """Client connected to the `controller` fixture."""
    with GreeterClient(f"127.0.0.1:{controller.port}", timeout=5.0) as c:
        c.wait_ready()
        yield c
