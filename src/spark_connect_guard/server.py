"""
Helpers for installing the interceptors on a gRPC server.

Example:

    server = create_server(enable_auth=True, enable_namespace_validation=True)
    base_pb2_grpc.add_SparkConnectServiceServicer_to_server(servicer, server)
    server.add_insecure_port("[::]:15002")
    server.start()
"""

import logging
from concurrent import futures

import grpc

from spark_connect_guard.auth_interceptor import KBaseAuthServerInterceptor
from spark_connect_guard.config import AuthGateConfig, NamespaceGuardConfig
from spark_connect_guard.namespace_interceptor import NamespaceValidationInterceptor

logger = logging.getLogger(__name__)


DEFAULT_MAX_WORKERS = 16

# gRPC configuration defaults
GRPC_MAX_MESSAGE_LENGTH_DEFAULT = 128 * 1024 * 1024  # 128 MB


def build_interceptors(
    enable_auth: bool = True,
    enable_namespace_validation: bool = True,
    auth_config: AuthGateConfig | None = None,
    namespace_config: NamespaceGuardConfig | None = None,
) -> list[grpc.ServerInterceptor]:
    """
    Build the enabled interceptors, authentication first.

    Configurations that are not passed in are read from the environment.

    Raises:
        ConfigurationError: If authentication is enabled without an Auth2 URL.
    """
    interceptors: list[grpc.ServerInterceptor] = []
    if enable_auth:
        interceptors.append(KBaseAuthServerInterceptor(auth_config))
    if enable_namespace_validation:
        interceptors.append(NamespaceValidationInterceptor(namespace_config))
    return interceptors


def create_server(
    max_workers: int = DEFAULT_MAX_WORKERS,
    interceptors: list[grpc.ServerInterceptor] | None = None,
    **kwargs,
) -> grpc.Server:
    """
    Create a thread-pool gRPC server with the interceptors installed.

    Args:
        max_workers: Worker threads; each call, including its Auth2 lookup,
            runs on one of them.
        interceptors: Interceptors to install. Built with build_interceptors(**kwargs) if None.
        **kwargs: Passed to build_interceptors().
    """
    if interceptors is None:
        interceptors = build_interceptors(**kwargs)

    options = [
        ("grpc.max_send_message_length", GRPC_MAX_MESSAGE_LENGTH_DEFAULT),
        ("grpc.max_receive_message_length", GRPC_MAX_MESSAGE_LENGTH_DEFAULT),
    ]
    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=max_workers),
        interceptors=interceptors,
        options=options,
    )
    logger.debug(f"Created gRPC server with {len(interceptors)} interceptor(s)")
    return server
