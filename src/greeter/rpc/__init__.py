"""
Greeter RPC contract: messages, wire format and handlers.
"""

from .messages import (
    HelloRequest,
    HelloResponse,
    SERVICE_NAME,
    SAY_HELLO,
    SAY_HELLO_PATH,
)
from .handler import HandlerError, RequestHandler, say_hello

__all__ = [
    "HelloRequest",
    "HelloResponse",
    "SERVICE_NAME",
    "SAY_HELLO",
    "SAY_HELLO_PATH",
    "HandlerError",
    "RequestHandler",
    "say_hello",
]
