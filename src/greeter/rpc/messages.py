"""
=============================================================================
GREETER MESSAGES AND WIRE FORMAT
=============================================================================

The service exchanges two proto3 messages:

    package helloworld;

    service Greeter {
        rpc SayHello (HelloRequest) returns (HelloResponse);
    }

    message HelloRequest  { string name = 1; }
    message HelloResponse { string message = 1; }

The descriptors are assembled at import time with the protobuf runtime, so
no protoc step is needed and the bytes on the wire are the standard proto3
encoding any gRPC client for this schema understands.

Application code never touches protobuf objects: it works with the frozen
dataclasses below, which convert to and from bytes at the transport edge.

=============================================================================
"""

from dataclasses import dataclass

from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message_factory import GetMessageClass


PROTO_PACKAGE = "helloworld"
SERVICE_NAME = f"{PROTO_PACKAGE}.Greeter"
SAY_HELLO = "SayHello"
SAY_HELLO_PATH = f"/{SERVICE_NAME}/{SAY_HELLO}"


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe helloworld.proto (see module docstring)."""
    proto = descriptor_pb2.FileDescriptorProto()
    proto.name = "greeter/helloworld.proto"
    proto.package = PROTO_PACKAGE
    proto.syntax = "proto3"

    for message_name, field_name in (("HelloRequest", "name"), ("HelloResponse", "message")):
        message = proto.message_type.add()
        message.name = message_name
        string_field = message.field.add()
        string_field.name = field_name
        string_field.number = 1
        string_field.type = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
        string_field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL

    service = proto.service.add()
    service.name = "Greeter"
    method = service.method.add()
    method.name = SAY_HELLO
    method.input_type = f".{PROTO_PACKAGE}.HelloRequest"
    method.output_type = f".{PROTO_PACKAGE}.HelloResponse"
    return proto


# A private pool keeps these names out of the process-wide default pool,
# where a generated helloworld_pb2 might already live.
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

_HelloRequestProto = GetMessageClass(_pool.FindMessageTypeByName(f"{PROTO_PACKAGE}.HelloRequest"))
_HelloResponseProto = GetMessageClass(_pool.FindMessageTypeByName(f"{PROTO_PACKAGE}.HelloResponse"))


@dataclass(frozen=True)
class HelloRequest:
    """
    A SayHello call's input.

    `name` is passed through verbatim: empty and whitespace-only names
    are valid. A request with the field absent on the wire decodes to "".
    """
    name: str = ""

    def to_bytes(self) -> bytes:
        return _HelloRequestProto(name=self.name).SerializeToString()

    @classmethod
    def from_bytes(cls, data: bytes) -> "HelloRequest":
        proto = _HelloRequestProto()
        proto.ParseFromString(data)
        return cls(name=proto.name)


@dataclass(frozen=True)
class HelloResponse:
    """A SayHello call's output."""
    message: str = ""

    def to_bytes(self) -> bytes:
        return _HelloResponseProto(message=self.message).SerializeToString()

    @classmethod
    def from_bytes(cls, data: bytes) -> "HelloResponse":
        proto = _HelloResponseProto()
        proto.ParseFromString(data)
        return cls(message=proto.message)
