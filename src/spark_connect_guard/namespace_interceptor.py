"""
Namespace validation server interceptor for Spark Connect.

Intercepts SQL sent through ExecutePlan and blocks CREATE
DATABASE/SCHEMA/NAMESPACE statements whose database name does not start
with one of the configured allowed prefixes. Other RPCs (Config,
AnalyzePlan, ...) pass through untouched.
"""

import enum
import logging
from collections.abc import Callable, Iterator
from typing import Any

import grpc

from spark_connect_guard.config import NamespaceGuardConfig
from spark_connect_guard.decision import ALLOW, Decision
from spark_connect_guard.handlers import Behavior, wrap_rpc_method_handler
from spark_connect_guard.namespaces import validate_create_database
from spark_connect_guard.sql_extractors import SqlExtractor, default_sql_extractor

logger = logging.getLogger(__name__)


EXECUTE_PLAN_METHOD = "ExecutePlan"


class CallState(enum.Enum):
    OPEN = "open"
    REJECTED = "rejected"


class GuardedCall:
    """
    Per-call state machine for namespace validation.

    A rejected message moves OPEN -> REJECTED and closes the call once. In
    REJECTED nothing reaches the downstream behaviour: no further messages
    and no end-of-stream.
    """

    def __init__(
        self,
        context: grpc.ServicerContext,
        check: Callable[[Any], Decision],
    ):
        self._context = context
        self._check = check
        self._state = CallState.OPEN

    @property
    def state(self) -> CallState:
        return self._state

    def on_message(self, message: Any) -> bool:
        """
        Inspect one inbound message.

        Returns:
            True if the message should be forwarded downstream. On rejection
            the call is aborted, which raises.
        """
        if self._state is CallState.REJECTED:
            return False

        decision = self._check(message)
        if decision.allowed:
            return True

        logger.warning(f"Namespace validation failed: {decision.message}")
        self._state = CallState.REJECTED
        decision.abort(self._context)
        return False

    def guard_stream(self, request_iterator: Iterator[Any]) -> "GuardedRequestStream":
        return GuardedRequestStream(self, request_iterator)


class CallRejectedError(Exception):
    """Raised when the request stream of a rejected call is read again."""

    pass


class GuardedRequestStream:
    """
    Request iterator that checks each message before handing it on.

    Messages are checked one at a time, in order, with nothing buffered. Once
    the call is rejected, reading again raises CallRejectedError instead of
    reporting a normal end of stream.
    """

    def __init__(self, call: GuardedCall, request_iterator: Iterator[Any]):
        self._call = call
        self._requests = iter(request_iterator)

    def __iter__(self) -> "GuardedRequestStream":
        return self

    def __next__(self) -> Any:
        if self._call.state is CallState.REJECTED:
            raise CallRejectedError("Call was rejected by namespace validation")
        message = next(self._requests)
        if not self._call.on_message(message):
            raise CallRejectedError("Call was rejected by namespace validation")
        return message


class NamespaceValidationInterceptor(grpc.ServerInterceptor):
    """
    gRPC server interceptor that validates namespace creation against allowed prefixes.

    Allowed prefixes come from ``BERDL_ALLOWED_NAMESPACE_PREFIXES`` (e.g.
    ``"u_alice__,kbase_,research_"``) unless a configuration is passed in.
    """

    def __init__(
        self,
        config: NamespaceGuardConfig | None = None,
        sql_extractor: SqlExtractor | None = None,
    ):
        self._config = config if config is not None else NamespaceGuardConfig.from_env()
        self._sql_extractor = sql_extractor or default_sql_extractor()

        logger.info(
            "Namespace Validation Interceptor initialized with allowed prefixes: "
            f"{list(self._config.allowed_prefixes)}"
        )

    @property
    def allowed_prefixes(self) -> tuple[str, ...]:
        return self._config.allowed_prefixes

    def extract_sql(self, message: Any) -> str | None:
        """Extract SQL text from a request message. Extraction errors count as no SQL."""
        try:
            return self._sql_extractor.extract(message)
        except Exception as e:
            logger.warning(f"Could not extract SQL from message: {e}")
            return None

    def check_message(self, message: Any) -> Decision:
        """Validate the SQL carried by a request message, if any."""
        sql = self.extract_sql(message)
        if sql is None:
            return ALLOW
        return validate_create_database(sql, self._config.allowed_prefixes)

    def intercept_service(self, continuation, handler_call_details):
        handler = continuation(handler_call_details)
        if handler is None:
            return None

        if EXECUTE_PLAN_METHOD not in handler_call_details.method:
            return handler

        def wrap(behavior: Behavior, request_streaming: bool) -> Behavior:
            def guarded_behavior(request_or_iterator, context: grpc.ServicerContext):
                call = GuardedCall(context, self.check_message)
                if request_streaming:
                    return behavior(call.guard_stream(request_or_iterator), context)
                if not call.on_message(request_or_iterator):
                    return None
                return behavior(request_or_iterator, context)

            return guarded_behavior

        return wrap_rpc_method_handler(handler, wrap)
