"""
KBase authentication and namespace governance for Apache Spark Connect servers.

This package provides two gRPC server interceptors:

- KBaseAuthServerInterceptor validates KBase tokens against the Auth2
  service and enforces that the caller owns the server's pod.
- NamespaceValidationInterceptor rejects CREATE DATABASE/SCHEMA/NAMESPACE
  statements whose names do not start with an allowed prefix.

Example usage:

    from spark_connect_guard import create_server

    # Reads KBASE_AUTH_URL, USER and BERDL_ALLOWED_NAMESPACE_PREFIXES
    server = create_server()
"""

from spark_connect_guard.auth_interceptor import KBaseAuthServerInterceptor
from spark_connect_guard.config import (
    AuthGateConfig,
    BypassPolicy,
    ConfigurationError,
    NamespaceGuardConfig,
)
from spark_connect_guard.decision import ALLOW, Decision
from spark_connect_guard.kbase_client import (
    KBaseAuthClient,
    KBaseAuthError,
    KBaseTokenInfo,
)
from spark_connect_guard.namespace_interceptor import NamespaceValidationInterceptor
from spark_connect_guard.server import build_interceptors, create_server

__version__ = "0.1.0"

__all__ = [
    # Interceptors
    "KBaseAuthServerInterceptor",
    "NamespaceValidationInterceptor",
    # Configuration
    "AuthGateConfig",
    "BypassPolicy",
    "ConfigurationError",
    "NamespaceGuardConfig",
    # Decisions
    "ALLOW",
    "Decision",
    # Auth Client
    "KBaseAuthClient",
    "KBaseAuthError",
    "KBaseTokenInfo",
    # Server Helpers
    "build_interceptors",
    "create_server",
]
