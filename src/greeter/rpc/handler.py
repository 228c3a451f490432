"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler maps one HelloRequest to one HelloResponse:

    def handler(request: HelloRequest) -> HelloResponse: ...

Handlers run on worker pool threads, possibly several at once, so they
must not mutate shared state without their own locking. `say_hello` is
a pure function and needs none.

A handler reports a failure by raising HandlerError. The endpoint turns
it into a gRPC status for that one call; other calls and the pool are
not affected.

=============================================================================
"""

from typing import Protocol

import grpc

from .messages import HelloRequest, HelloResponse


class HandlerError(Exception):
    """
    Declared failure of a single call.

    Attributes:
        status: gRPC status code sent to the caller.
    """

    def __init__(self, message: str, status: grpc.StatusCode = grpc.StatusCode.INTERNAL):
        super().__init__(message)
        self.status = status


class RequestHandler(Protocol):
    def __call__(self, request: HelloRequest) -> HelloResponse: ...


def say_hello(request: HelloRequest) -> HelloResponse:
    """
    Greet the caller by name.

    The name is not validated or trimmed: "" yields "Hello ".
    """
    return HelloResponse(message="Hello " + request.name)
