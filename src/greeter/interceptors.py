"""
=============================================================================
ACCESS LOG INTERCEPTOR
=============================================================================

One log line per RPC with timing, a short call ID, the peer and the final
status code. Runs inside the worker slot, around the handler.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ [1f3a9c2e] ipv4:127.0.0.1:53122 /helloworld.Greeter/SayHello OK 0.41ms│
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"call_id": "1f3a9c2e", "method": "/helloworld.Greeter/SayHello",   │
    │  "peer": "ipv4:127.0.0.1:53122", "status": "OK",                    │
    │  "duration_ms": 0.41, "timestamp": "..."}                           │
    └─────────────────────────────────────────────────────────────────────┘

Configure it like any logger:
    logging.getLogger("greeter.access").setLevel(logging.WARNING)

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import grpc


logger = logging.getLogger("greeter.access")


@dataclass
class CallLog:
    """Structured access log entry for one call."""

    call_id: str
    method: str
    peer: str
    status: str
    duration_ms: float
    timestamp: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        entry = {
            "call_id": self.call_id,
            "method": self.method,
            "peer": self.peer,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }
        if self.error:
            entry["error"] = self.error
        return entry

    def to_text(self) -> str:
        line = (
            f"[{self.call_id}] {self.peer} {self.method} "
            f"{self.status} {self.duration_ms:.2f}ms"
        )
        if self.error:
            line += f" ({self.error})"
        return line


def _status_name(context: grpc.ServicerContext, default: grpc.StatusCode) -> str:
    code = context.code() if hasattr(context, "code") else None
    if not isinstance(code, grpc.StatusCode):
        code = default
    return code.name


def _details(context: grpc.ServicerContext) -> Optional[str]:
    details = context.details() if hasattr(context, "details") else None
    if isinstance(details, bytes):
        details = details.decode("utf-8", "replace")
    return details or None


class AccessLogInterceptor(grpc.ServerInterceptor):
    """
    Server interceptor logging every unary-unary call.

    Usage:
        interceptor = AccessLogInterceptor(log_format="json")
        LifecycleController(config, interceptors=[interceptor])

    Args:
        log_format: "text" or "json".
        log_level: Level for successful calls; failures log at WARNING.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Optional[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> Optional[grpc.RpcMethodHandler]:
        handler = continuation(handler_call_details)
        if handler is None or handler.unary_unary is None:
            return handler

        method = handler_call_details.method
        behavior = handler.unary_unary

        def logged_behavior(request, context):
            call_id = uuid.uuid4().hex[:8]
            start_time = time.perf_counter()
            try:
                response = behavior(request, context)
            except Exception as e:
                self._emit(
                    call_id, method, context, start_time,
                    _status_name(context, grpc.StatusCode.UNKNOWN),
                    error=_details(context) or str(e) or type(e).__name__,
                    level=logging.WARNING,
                )
                raise
            self._emit(
                call_id, method, context, start_time,
                _status_name(context, grpc.StatusCode.OK),
            )
            return response

        return grpc.unary_unary_rpc_method_handler(
            logged_behavior,
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )

    def _emit(self, call_id, method, context, start_time, status, error=None, level=None):
        entry = CallLog(
            call_id=call_id,
            method=method,
            peer=context.peer(),
            status=status,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            error=error,
        )
        if self.log_format == "json":
            message = json.dumps(entry.to_dict())
        else:
            message = entry.to_text()
        logger.log(level if level is not None else self.log_level, message)
