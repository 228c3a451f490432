"""
=============================================================================
SERVICE ENDPOINT
=============================================================================

The endpoint is the network face of the service. It owns the gRPC server
(the listening port and the transport's polling thread) and hands every
incoming call to the worker pool.

=============================================================================
CALL FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   client ──► gRPC polling thread                                    │
    │                 │                                                    │
    │                 │ executor.submit(run_call)    (never blocks)        │
    │                 ▼                                                    │
    │           WorkerPool queue ──► worker slot                           │
    │                                    │                                 │
    │                                    ├── HelloRequest.from_bytes      │
    │                                    ├── handler(request)             │
    │                                    └── HelloResponse.to_bytes       │
    │                                    │                                 │
    │   client ◄── response / status ◄───┘                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

gRPC's default in Python is whatever executor you pass to grpc.server();
here that is a thin adapter over the fixed WorkerPool, so the number of
handler threads is exactly the configured worker count.

=============================================================================
FAILURES
=============================================================================

    Bind failure        BindError from start(); nothing is left listening.
    HandlerError        That call ends with the error's status code.
    Other exception     Logged; that call ends with INTERNAL.
    Pool closed         The call is dropped; the transport cancels it
                        when the shutdown grace period ends.

=============================================================================
"""

import logging
import threading
from concurrent import futures
from typing import Optional, Sequence

import grpc

from ..config import ServiceConfig
from ..rpc import (
    HandlerError,
    HelloRequest,
    HelloResponse,
    RequestHandler,
    SAY_HELLO,
    SAY_HELLO_PATH,
    SERVICE_NAME,
)
from .worker_pool import PoolClosedError, WorkerPool


logger = logging.getLogger(__name__)


class StartupError(Exception):
    """The service could not reach the running state."""


class BindError(StartupError):
    """The listening port could not be bound."""


class PoolExecutor(futures.Executor):
    """
    concurrent.futures view of a WorkerPool, for grpc.server().

    The pool's lifecycle belongs to LifecycleController, so shutdown()
    here is a no-op.
    """

    def __init__(self, pool: WorkerPool):
        self._pool = pool

    def submit(self, fn, /, *args, **kwargs) -> futures.Future:
        try:
            return self._pool.submit(fn, *args, **kwargs)
        except PoolClosedError:
            logger.warning("Worker pool closed, dropping incoming call")
            future: futures.Future = futures.Future()
            future.cancel()
            return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False):
        pass


class ServiceEndpoint:
    """
    gRPC endpoint serving Greeter/SayHello on a WorkerPool.

    Usage:
        endpoint = ServiceEndpoint(config, say_hello, pool)
        port = endpoint.start()
        ...
        endpoint.stop(grace=30.0)
        endpoint.wait_closed(timeout=5.0)
    """

    def __init__(
        self,
        config: ServiceConfig,
        handler: RequestHandler,
        pool: WorkerPool,
        interceptors: Optional[Sequence[grpc.ServerInterceptor]] = None,
    ):
        self.config = config
        self._handler = handler
        self._pool = pool
        self._interceptors = list(interceptors or [])

        self._server: Optional[grpc.Server] = None
        self._port: Optional[int] = None
        self._serving = False
        self._stop_event: Optional[threading.Event] = None

    @property
    def port(self) -> Optional[int]:
        """The bound port, once started."""
        return self._port

    @property
    def is_serving(self) -> bool:
        return self._serving

    def start(self) -> int:
        """
        Bind the port and start accepting calls.

        Returns:
            The bound port (useful when the configured port is 0).

        Raises:
            BindError: If the address cannot be bound.
        """
        if self._server is not None:
            raise RuntimeError("Endpoint already started")

        server = grpc.server(
            PoolExecutor(self._pool),
            handlers=[self._generic_handler()],
            interceptors=self._interceptors,
            options=self.config.grpc_options(),
        )

        address = self.config.address
        try:
            port = server.add_insecure_port(address)
        except RuntimeError as e:
            logger.error(f"Failed to bind to {address}: {e}")
            raise BindError(f"Failed to bind to {address}: {e}") from e

        # Older grpcio releases report a failed bind as port 0
        if not port:
            logger.error(f"Failed to bind to {address}")
            server.stop(None)
            raise BindError(f"Failed to bind to {address}")

        server.start()

        self._server = server
        self._port = port
        self._serving = True
        logger.info(f"Endpoint listening on {self.config.host}:{port} ({SAY_HELLO_PATH})")
        return port

    def stop(self, grace: Optional[float]) -> threading.Event:
        """
        Stop accepting new calls.

        Calls still running after `grace` seconds are cancelled by the
        transport; grace=0 cancels them at once. May be called again with
        a shorter grace to force an earlier cancel.

        Returns:
            Event set once the transport has fully shut down.
        """
        if self._server is None:
            event = threading.Event()
            event.set()
            self._stop_event = event
            return event

        if self._serving:
            logger.info(f"Endpoint stopped accepting calls (grace={grace}s)")
        self._serving = False

        self._stop_event = self._server.stop(grace)
        return self._stop_event

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait for the transport to release the port. True if it did."""
        if self._stop_event is None:
            return self._server is None
        closed = self._stop_event.wait(timeout)
        if closed:
            logger.info("Endpoint closed")
        return closed

    # =========================================================================
    # CALL HANDLING (runs on a worker slot)
    # =========================================================================

    def _generic_handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(
            SERVICE_NAME,
            {
                SAY_HELLO: grpc.unary_unary_rpc_method_handler(
                    self._invoke,
                    request_deserializer=HelloRequest.from_bytes,
                    response_serializer=HelloResponse.to_bytes,
                ),
            },
        )

    def _invoke(self, request: HelloRequest, context: grpc.ServicerContext) -> HelloResponse:
        try:
            return self._handler(request)
        except HandlerError as e:
            context.abort(e.status, str(e))
        except Exception as e:
            logger.exception(f"Unhandled error in {SAY_HELLO_PATH}: {e}")
            context.abort(grpc.StatusCode.INTERNAL, "Internal server error")
