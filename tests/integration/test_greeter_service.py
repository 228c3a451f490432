"""
End-to-end tests: real gRPC calls against a running controller.
"""

import logging
import signal
import threading
import time

import grpc
import pytest

from greeter import DrainResult, LifecycleController, LifecycleState, ServiceConfig
from greeter.client import GreeterClient
from greeter.rpc import HandlerError, HelloRequest, HelloResponse, say_hello


def start_with(config: ServiceConfig, handler) -> tuple:
    """Start a controller with a custom handler and connect a client."""
    controller = LifecycleController(config, handler=handler)
    controller.start()
    client = GreeterClient(f"127.0.0.1:{controller.port}", timeout=10.0)
    client.wait_ready()
    return controller, client


class TestSayHello:
    """Tests for the SayHello RPC over the wire."""

    def test_hello_world(self, client: GreeterClient):
        response = client.say_hello("World")

        assert isinstance(response, HelloResponse)
        assert response.message == "Hello World"

    def test_empty_name_is_echoed(self, client: GreeterClient):
        """No validation: an empty name yields "Hello "."""
        assert client.say_hello("").message == "Hello "

    def test_many_concurrent_calls(self, client: GreeterClient):
        """More calls than workers all complete; excess calls queue."""
        calls = [client.say_hello_future(f"caller-{i}") for i in range(25)]

        messages = sorted(call.result(timeout=10.0).message for call in calls)

        assert messages == sorted(f"Hello caller-{i}" for i in range(25))

    def test_access_log(self, client: GreeterClient, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.INFO, logger="greeter.access"):
            client.say_hello("World")

        lines = [r.getMessage() for r in caplog.records if r.name == "greeter.access"]
        assert any("/helloworld.Greeter/SayHello OK" in line for line in lines)


class TestHandlerFailures:
    """A failing call must not affect other calls."""

    def test_declared_failure_maps_to_status(self, config: ServiceConfig):
        def picky(request: HelloRequest) -> HelloResponse:
            if request.name == "bad":
                raise HandlerError("name not allowed", status=grpc.StatusCode.INVALID_ARGUMENT)
            return say_hello(request)

        controller, client = start_with(config, picky)
        try:
            with pytest.raises(grpc.RpcError) as exc_info:
                client.say_hello("bad")

            assert exc_info.value.code() is grpc.StatusCode.INVALID_ARGUMENT
            assert exc_info.value.details() == "name not allowed"
            assert client.say_hello("good").message == "Hello good"
        finally:
            client.close()
            controller.stop()

    def test_unexpected_failure_is_internal(self, config: ServiceConfig):
        def broken(request: HelloRequest) -> HelloResponse:
            raise KeyError("oops")

        controller, client = start_with(config, broken)
        try:
            with pytest.raises(grpc.RpcError) as exc_info:
                client.say_hello("World")

            assert exc_info.value.code() is grpc.StatusCode.INTERNAL
            assert controller.pool.stats["tasks"]["failed"] == 0
        finally:
            client.close()
            controller.stop()


class TestBoundedConcurrency:
    def test_handlers_never_exceed_workers(self, config: ServiceConfig):
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def slow(request: HelloRequest) -> HelloResponse:
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.05)
            with lock:
                state["current"] -= 1
            return say_hello(request)

        controller, client = start_with(config, slow)
        try:
            calls = [client.say_hello_future(str(i)) for i in range(12)]
            for call in calls:
                call.result(timeout=10.0)

            assert state["peak"] <= config.workers
        finally:
            client.close()
            controller.stop()


class TestGracefulShutdown:
    def test_in_flight_call_completes_during_drain(self, config: ServiceConfig):
        """A call running when shutdown starts still gets its response."""
        started = threading.Event()

        def slowish(request: HelloRequest) -> HelloResponse:
            started.set()
            time.sleep(0.3)
            return say_hello(request)

        controller, client = start_with(config, slowish)
        try:
            call = client.say_hello_future("draining")
            assert started.wait(5.0)

            result = controller.stop()

            assert result is DrainResult.DRAINED
            assert call.result(timeout=5.0).message == "Hello draining"
        finally:
            client.close()

    def test_slow_handler_does_not_delay_stop(self):
        """A handler outliving the drain deadline is abandoned on time."""
        drain_timeout = 0.5
        force_stop_timeout = 1.0
        config = ServiceConfig(
            host="127.0.0.1",
            port=0,
            workers=1,
            drain_timeout=drain_timeout,
            force_stop_timeout=force_stop_timeout,
        )
        started = threading.Event()
        release = threading.Event()

        def stuck(request: HelloRequest) -> HelloResponse:
            started.set()
            release.wait(10.0)
            return say_hello(request)

        controller, client = start_with(config, stuck)
        try:
            in_flight = client.say_hello_future("slow")
            queued = client.say_hello_future("queued")
            assert started.wait(5.0)

            start = time.monotonic()
            controller._handle_signal(signal.SIGTERM, None)
            assert controller.wait_for_termination(timeout=10.0)
            elapsed = time.monotonic() - start

            assert controller.state is LifecycleState.STOPPED
            assert controller.drain_result is DrainResult.TIMED_OUT
            assert elapsed < drain_timeout + force_stop_timeout + 0.5

            for call in (in_flight, queued):
                with pytest.raises(grpc.RpcError):
                    call.result(timeout=5.0)
        finally:
            release.set()
            client.close()
