"""
Greeter client.

    with GreeterClient("localhost:50051") as client:
        print(client.say_hello("World").message)    # Hello World

Errors from the server surface as grpc.RpcError (check `.code()`).
"""

from typing import Optional

import grpc

from .rpc import HelloRequest, HelloResponse, SAY_HELLO_PATH


class GreeterClient:
    """Thin wrapper over an insecure channel and the SayHello stub."""

    def __init__(self, target: str, timeout: Optional[float] = None):
        """
        Args:
            target: "host:port" of the server.
            timeout: Per-call deadline in seconds, None = no deadline.
        """
        self.target = target
        self.timeout = timeout
        self._channel = grpc.insecure_channel(target)
        self._say_hello = self._channel.unary_unary(
            SAY_HELLO_PATH,
            request_serializer=HelloRequest.to_bytes,
            response_deserializer=HelloResponse.from_bytes,
        )

    def say_hello(self, name: str) -> HelloResponse:
        return self._say_hello(HelloRequest(name=name), timeout=self.timeout)

    def say_hello_future(self, name: str) -> grpc.Future:
        """Start a call without waiting; `.result()` gives the HelloResponse."""
        return self._say_hello.future(HelloRequest(name=name), timeout=self.timeout)

    def wait_ready(self, timeout: float = 5.0):
        """Block until the channel is connected (grpc.FutureTimeoutError otherwise)."""
        grpc.channel_ready_future(self._channel).result(timeout=timeout)

    def close(self):
        self._channel.close()

    def __enter__(self) -> "GreeterClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
