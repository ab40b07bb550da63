"""
KBase authentication server interceptor for Spark Connect.

Every call must carry a valid KBase token in the ``authorization`` header
(Bearer format) or the ``x-kbase-token`` header, unless the peer shares the
server's pod and the configured bypass policy exempts it. Tokens are
validated against the KBase Auth2 service, and the resolved username must
match the pod owner when one is configured.

Enable on a grpc server:

    server = grpc.server(executor, interceptors=[KBaseAuthServerInterceptor()])
"""

import logging
from collections.abc import Mapping

import grpc

from spark_connect_guard.config import AuthGateConfig
from spark_connect_guard.decision import ALLOW, Decision
from spark_connect_guard.handlers import (
    Behavior,
    invocation_metadata_dict,
    wrap_rpc_method_handler,
)
from spark_connect_guard.kbase_client import KBaseAuthClient, KBaseAuthError
from spark_connect_guard.peer import is_same_origin

logger = logging.getLogger(__name__)


# Metadata keys for KBase authentication
AUTHORIZATION_METADATA_KEY = "authorization"
KBASE_TOKEN_METADATA_KEY = "x-kbase-token"

_BEARER_PREFIX = "bearer "

MISSING_TOKEN_MESSAGE = (
    "Missing authentication token. Provide a valid KBase token in the "
    f"'{AUTHORIZATION_METADATA_KEY}' header (Bearer format) or the "
    f"'{KBASE_TOKEN_METADATA_KEY}' header."
)
AUTH_FAILED_MESSAGE = "Authentication failed. Please check your token."


def extract_token(metadata: Mapping[str, str]) -> str | None:
    """
    Extract a token from request metadata.

    Checks the ``authorization`` header for a Bearer token first, then the
    ``x-kbase-token`` header. Keys are expected to be lower-case.
    """
    auth_header = metadata.get(AUTHORIZATION_METADATA_KEY)
    if auth_header and auth_header.lower().startswith(_BEARER_PREFIX):
        return auth_header[len(_BEARER_PREFIX):]

    kbase_token = metadata.get(KBASE_TOKEN_METADATA_KEY)
    if kbase_token:
        return kbase_token

    return None


class KBaseAuthServerInterceptor(grpc.ServerInterceptor):
    """
    gRPC server interceptor that validates KBase authentication tokens.

    The decision is made once per call, before the service behaviour runs,
    on the server's worker thread for that call.
    """

    def __init__(
        self,
        config: AuthGateConfig | None = None,
        auth_client: KBaseAuthClient | None = None,
    ):
        """
        Initialize the interceptor.

        Args:
            config: Interceptor configuration. Loaded from the environment if None.
            auth_client: Auth2 client. Built from the configuration if None.

        Raises:
            ConfigurationError: If the Auth2 URL is not configured.
        """
        self._config = config if config is not None else AuthGateConfig.from_env()
        self._auth_client = auth_client or KBaseAuthClient(
            self._config.auth_url, timeout=self._config.timeout
        )

        logger.info("KBase Auth Interceptor initialized:")
        logger.info(f"  Auth URL: {self._config.auth_url}")
        logger.info(f"  Pod Owner: {self._config.pod_owner}")
        logger.info(f"  Same-origin bypass: {self._config.bypass_policy.value}")
        if self._config.pod_address:
            logger.info(f"  Pod Address: {self._config.pod_address}")

    @property
    def config(self) -> AuthGateConfig:
        """Get the interceptor configuration."""
        return self._config

    def authorize(self, peer: str | None, metadata: Mapping[str, str]) -> Decision:
        """
        Decide whether a call may proceed.

        Args:
            peer: The transport peer, as reported by ``ServicerContext.peer()``.
            metadata: Call metadata with lower-case keys.
        """
        if is_same_origin(peer, self._config.bypass_policy, self._config.pod_address):
            logger.info(f"Allowing same-origin connection from {peer} without token")
            return ALLOW

        token = extract_token(metadata)
        if token is None:
            logger.info(f"Missing authentication token from {peer}")
            return Decision.deny(grpc.StatusCode.UNAUTHENTICATED, MISSING_TOKEN_MESSAGE)

        try:
            token_info = self._auth_client.validate_token(token)
        except KBaseAuthError as e:
            logger.warning(f"Token validation failed for {peer}: {e}")
            return Decision.deny(grpc.StatusCode.UNAUTHENTICATED, AUTH_FAILED_MESSAGE)
        except Exception:
            logger.exception(f"Unexpected error validating token for {peer}")
            return Decision.deny(grpc.StatusCode.UNAUTHENTICATED, AUTH_FAILED_MESSAGE)

        username = token_info.user
        pod_owner = self._config.pod_owner
        if pod_owner is not None and username != pod_owner:
            logger.warning(f"User {username} attempted to access cluster owned by {pod_owner}")
            return Decision.deny(
                grpc.StatusCode.PERMISSION_DENIED,
                f"User '{username}' is not authorized to access this cluster. "
                f"This cluster belongs to '{pod_owner}'.",
            )

        logger.info(f"Authenticated request from user: {username}")
        logger.debug(
            f"Token details for {username}: id={token_info.token_id}, "
            f"type={token_info.token_type}, expires={token_info.expires}, "
            f"roles={list(token_info.custom_roles)}"
        )
        return ALLOW

    def intercept_service(self, continuation, handler_call_details):
        handler = continuation(handler_call_details)
        if handler is None:
            return None

        metadata = invocation_metadata_dict(handler_call_details)

        def wrap(behavior: Behavior, request_streaming: bool) -> Behavior:
            def authenticated_behavior(request_or_iterator, context: grpc.ServicerContext):
                decision = self.authorize(context.peer(), metadata)
                if not decision.allowed:
                    decision.abort(context)
                return behavior(request_or_iterator, context)

            return authenticated_behavior

        return wrap_rpc_method_handler(handler, wrap)
