"""
=============================================================================
LIFECYCLE CONTROLLER
=============================================================================

The controller owns the worker pool and the endpoint for the whole life of
the process and drives them through four states:

    ┌─────────────┐  start()   ┌─────────┐  stop() / SIGTERM  ┌──────────┐
    │ NOT_STARTED │ ─────────► │ RUNNING │ ─────────────────► │ DRAINING │
    └─────────────┘            └─────────┘                    └────┬─────┘
           │                                                       │
           │ stop() before start(),                                │ drained, or
           │ or start() failed                                     │ deadline hit
           ▼                                                       ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                              STOPPED                                 │
    └─────────────────────────────────────────────────────────────────────┘

Transitions only move forward. STOPPED is terminal.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. Endpoint stops accepting calls
    2. Pool stops accepting work
    3. Wait up to drain_timeout for queued and running calls
         ├── drained      → clean stop
         ├── timed out    → queued calls abandoned, running calls cancelled
         └── interrupted  → same as timed out, right away
    4. Wait (bounded) for the transport to release the port
    5. STOPPED; wait_for_termination() returns

SIGTERM or SIGINT starts this sequence on a background thread so the signal
handler returns at once. A second signal while draining skips the rest of
the wait.

=============================================================================
"""

import logging
import signal
import threading
from enum import Enum
from typing import Optional, Sequence

import grpc

from .config import ServiceConfig
from .core import (
    DrainResult,
    ServiceEndpoint,
    StartupError,
    WorkerPool,
)
from .interceptors import AccessLogInterceptor
from .rpc import RequestHandler, say_hello


logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class LifecycleError(RuntimeError):
    """An operation was requested in a state that does not allow it."""


class LifecycleController:
    """
    Start, serve, drain and stop the greeter service.

    Usage:
        controller = LifecycleController(ServiceConfig(port=50051))
        controller.serve()              # blocks until SIGTERM / Ctrl+C

    Or, driven by hand (tests, embedding):
        controller = LifecycleController(config)
        port = controller.start()
        ...
        result = controller.stop()      # DrainResult
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        handler: RequestHandler = say_hello,
        interceptors: Optional[Sequence[grpc.ServerInterceptor]] = None,
    ):
        """
        Args:
            config: Service configuration. Validated here (fail-fast).
            handler: Application handler run for every SayHello call.
            interceptors: gRPC server interceptors. Defaults to an access
                          log in the configured format.
        """
        self.config = config or ServiceConfig()
        self.config.validate()

        self._handler = handler
        if interceptors is None:
            interceptors = [AccessLogInterceptor(log_format=self.config.log_format)]
        self._interceptors = list(interceptors)

        self._state = LifecycleState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()

        self._pool: Optional[WorkerPool] = None
        self._endpoint: Optional[ServiceEndpoint] = None
        self._drain_result: Optional[DrainResult] = None

        self._original_handlers: dict = {}

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        with self._state_lock:
            return self._state

    @property
    def port(self) -> Optional[int]:
        """Bound port while running (None before start)."""
        return self._endpoint.port if self._endpoint else None

    @property
    def pool(self) -> Optional[WorkerPool]:
        return self._pool

    @property
    def drain_result(self) -> Optional[DrainResult]:
        """How the last shutdown ended, once STOPPED."""
        return self._drain_result

    def _transition(self, expected: LifecycleState, new: LifecycleState) -> bool:
        with self._state_lock:
            if self._state is not expected:
                return False
            logger.debug(f"Lifecycle {self._state.value} -> {new.value}")
            self._state = new
            return True

    def _mark_stopped(self):
        with self._state_lock:
            self._state = LifecycleState.STOPPED
        self._stopped.set()

    # =========================================================================
    # STARTUP
    # =========================================================================

    def start(self) -> int:
        """
        Bind the endpoint and start serving. NOT_STARTED → RUNNING.

        Returns:
            The bound port.

        Raises:
            StartupError: Bind failed. The controller is left STOPPED.
            LifecycleError: Called more than once.
        """
        with self._state_lock:
            if self._state is not LifecycleState.NOT_STARTED:
                raise LifecycleError(f"Cannot start from state {self._state.value}")

            self._pool = WorkerPool(capacity=self.config.workers, name="greeter-worker")
            self._endpoint = ServiceEndpoint(
                self.config, self._handler, self._pool, interceptors=self._interceptors
            )

            self._pool.start()
            try:
                port = self._endpoint.start()
            except StartupError:
                self._pool.shutdown_now()
                self._drain_result = DrainResult.DRAINED
                self._state = LifecycleState.STOPPED
                self._stopped.set()
                raise

            self._state = LifecycleState.RUNNING

        logger.info(
            f"Server started, listening on {self.config.host}:{port} "
            f"with {self.config.workers} workers"
        )
        return port

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def stop(self) -> DrainResult:
        """
        Gracefully stop: RUNNING → DRAINING → STOPPED.

        Safe to call from any thread and more than once; later callers
        wait for the first shutdown to finish and get its result.

        Returns:
            DRAINED if every call finished within drain_timeout,
            TIMED_OUT if work had to be abandoned,
            INTERRUPTED if the wait was cut short by interrupt().
        """
        if self._transition(LifecycleState.NOT_STARTED, LifecycleState.STOPPED):
            self._drain_result = DrainResult.DRAINED
            self._stopped.set()
            return self._drain_result

        if not self._transition(LifecycleState.RUNNING, LifecycleState.DRAINING):
            self._stopped.wait()
            return self._drain_result

        timeout = self.config.drain_timeout
        logger.info(f"Draining: waiting up to {timeout}s for in-flight calls")

        result = DrainResult.INTERRUPTED
        try:
            # ─────────────────────────────────────────────────────────────
            # STOP INTAKE
            # ─────────────────────────────────────────────────────────────
            self._endpoint.stop(grace=timeout)
            self._pool.shutdown(wait=False)

            # ─────────────────────────────────────────────────────────────
            # DRAIN (bounded)
            # ─────────────────────────────────────────────────────────────
            try:
                result = self._pool.await_drain(timeout)
            except KeyboardInterrupt:
                logger.warning("Interrupted while draining, forcing stop")
                result = DrainResult.INTERRUPTED

            # ─────────────────────────────────────────────────────────────
            # FORCE STOP
            # ─────────────────────────────────────────────────────────────
            if result is not DrainResult.DRAINED:
                in_flight = self._pool.occupied
                abandoned = self._pool.shutdown_now()
                logger.warning(
                    f"Drain {result.value}: {abandoned} queued calls abandoned, "
                    f"{in_flight} in-flight calls not guaranteed to complete"
                )
                self._endpoint.stop(grace=0)
            else:
                logger.info("All in-flight calls completed")
                self._pool.join(timeout=self.config.force_stop_timeout)

            if not self._endpoint.wait_closed(self.config.force_stop_timeout):
                logger.warning(
                    f"Transport did not close within {self.config.force_stop_timeout}s"
                )
        finally:
            self._drain_result = result
            self._mark_stopped()
            logger.info("Server stopped")

        return self._drain_result

    def request_stop(self) -> threading.Thread:
        """Run stop() on a background thread and return that thread."""
        thread = threading.Thread(target=self.stop, name="greeter-shutdown")
        thread.start()
        return thread

    def interrupt(self):
        """Cut an ongoing (or upcoming) drain wait short and force-stop."""
        if self._pool is not None:
            self._pool.interrupt_drain()

    def wait_for_termination(self, timeout: Optional[float] = None) -> bool:
        """
        Block until STOPPED.

        Returns:
            True once stopped, False if the timeout elapsed first.
        """
        return self._stopped.wait(timeout)

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _handle_signal(self, signum, frame):
        """
        SIGTERM / SIGINT entry point.

        First signal: begin graceful shutdown. Signal while draining:
        force-stop now.
        """
        signal_name = signal.Signals(signum).name
        state = self.state

        if state is LifecycleState.RUNNING:
            logger.info(f"Received {signal_name}, shutting down gracefully...")
            self.request_stop()
        elif state is LifecycleState.DRAINING:
            logger.warning(f"Received {signal_name} while draining, forcing stop")
            self.interrupt()

    def install_signal_handlers(self):
        """Route SIGTERM and SIGINT to this controller (main thread only)."""
        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, self._handle_signal)

    def restore_signal_handlers(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # BLOCKING RUN
    # =========================================================================

    def serve(self):
        """
        Start, then block until a signal (or another thread) stops us.

        Raises:
            StartupError: If the endpoint could not bind.
        """
        self._setup_logging()
        self.start()
        self.install_signal_handlers()
        try:
            self.wait_for_termination()
        finally:
            self.restore_signal_handlers()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("greeter").setLevel(level)
