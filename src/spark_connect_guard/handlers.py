"""Helpers for wrapping grpc.RpcMethodHandler behaviours inside server interceptors."""

from collections.abc import Callable
from typing import Any

import grpc

# behaviour(request_or_iterator, context) -> response_or_iterator
Behavior = Callable[[Any, grpc.ServicerContext], Any]


def invocation_metadata_dict(handler_call_details: grpc.HandlerCallDetails) -> dict[str, str]:
    """Return call metadata as a dict with lower-cased keys. The first value for a key wins."""
    result: dict[str, str] = {}
    for key, value in getattr(handler_call_details, "invocation_metadata", None) or ():
        result.setdefault(key.lower(), value)
    return result


def wrap_rpc_method_handler(
    handler: grpc.RpcMethodHandler,
    wrap: Callable[[Behavior, bool], Behavior],
) -> grpc.RpcMethodHandler:
    """
    Rebuild a method handler with its behaviour wrapped.

    ``wrap`` receives the original behaviour and whether the request side is
    a stream, and returns the replacement behaviour.
    """
    if handler.unary_unary:
        return grpc.unary_unary_rpc_method_handler(
            wrap(handler.unary_unary, False),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
    if handler.unary_stream:
        return grpc.unary_stream_rpc_method_handler(
            wrap(handler.unary_stream, False),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
    if handler.stream_unary:
        return grpc.stream_unary_rpc_method_handler(
            wrap(handler.stream_unary, True),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
    if handler.stream_stream:
        return grpc.stream_stream_rpc_method_handler(
            wrap(handler.stream_stream, True),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
    return handler
