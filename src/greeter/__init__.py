"""
=============================================================================
GREETER - Bounded-Worker gRPC Greeting Service
=============================================================================

A single unary RPC, `helloworld.Greeter/SayHello`, served by a gRPC
endpoint whose handlers run on a fixed-size worker pool, with a lifecycle
controller that drains in-flight calls on SIGTERM before stopping.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    greeter/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m greeter)
    ├── lifecycle.py         # LifecycleController (start / drain / stop)
    ├── config.py            # ServiceConfig dataclass
    ├── interceptors.py      # Access log interceptor
    ├── client.py            # GreeterClient
    ├── core/
    │   ├── worker_pool.py   # Fixed-capacity WorkerPool
    │   └── endpoint.py      # gRPC ServiceEndpoint
    └── rpc/
        ├── messages.py      # HelloRequest / HelloResponse + wire format
        └── handler.py       # say_hello, HandlerError

=============================================================================
QUICK START
=============================================================================

    from greeter import LifecycleController, ServiceConfig

    controller = LifecycleController(ServiceConfig(port=50051, workers=2))
    controller.serve()          # blocks until SIGTERM / Ctrl+C

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServiceConfig
from .lifecycle import LifecycleController, LifecycleError, LifecycleState
from .core import DrainResult, StartupError
from .rpc import HelloRequest, HelloResponse, say_hello

__all__ = [
    "ServiceConfig",
    "LifecycleController",
    "LifecycleError",
    "LifecycleState",
    "DrainResult",
    "StartupError",
    "HelloRequest",
    "HelloResponse",
    "say_hello",
    "__version__",
]
