"""Shared fixtures for interceptor tests."""

from unittest.mock import MagicMock

import grpc
import pytest


class AbortError(Exception):
    """Stands in for the exception grpc raises from ServicerContext.abort()."""


@pytest.fixture
def servicer_context() -> MagicMock:
    """A servicer context whose abort() raises, like grpc's."""
    context = MagicMock(spec=grpc.ServicerContext)
    context.peer.return_value = "ipv4:10.0.0.5:51234"
    context.abort.side_effect = AbortError()
    return context


def make_call_details(method: str, metadata=()) -> MagicMock:
    details = MagicMock(spec=grpc.HandlerCallDetails)
    details.method = method
    details.invocation_metadata = tuple(metadata)
    return details
