"""
Configuration for the Spark Connect server interceptors.

Each interceptor takes an explicit, immutable configuration object. The
``from_env`` constructors read the process environment once so that the
interceptors can still be registered by class name on a server that only
knows about environment variables.
"""

import enum
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# Environment variable names
ENV_KBASE_AUTH_URL = "KBASE_AUTH_URL"
ENV_POD_OWNER = "USER"
ENV_POD_IP = "SPARK_CONNECT_POD_IP"
ENV_SAME_ORIGIN_BYPASS = "SPARK_CONNECT_SAME_ORIGIN_BYPASS"
ENV_KBASE_AUTH_TIMEOUT = "KBASE_AUTH_TIMEOUT"
ENV_ALLOWED_NAMESPACE_PREFIXES = "BERDL_ALLOWED_NAMESPACE_PREFIXES"

DEFAULT_AUTH_TIMEOUT = 10.0


class ConfigurationError(ValueError):
    """Raised when an interceptor is constructed with an unusable configuration."""

    pass


class BypassPolicy(str, enum.Enum):
    """Which peers skip token checks because they share the server's pod."""

    NONE = "none"
    LOOPBACK = "loopback"
    LOOPBACK_AND_POD = "loopback_and_pod"

    @classmethod
    def parse(cls, value: str | None) -> "BypassPolicy":
        if value is None or not value.strip():
            return cls.LOOPBACK
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Invalid {ENV_SAME_ORIGIN_BYPASS} value '{value}'. Expected one of: {choices}"
            ) from None


@dataclass(frozen=True)
class AuthGateConfig:
    """
    Configuration for KBaseAuthServerInterceptor.

    Attributes:
        auth_url: Base URL of the KBase Auth2 service (required).
        pod_owner: Username that owns this server. None disables owner matching.
        pod_address: This server's own address, used by the
            ``loopback_and_pod`` bypass policy.
        bypass_policy: Which peers skip token checks.
        timeout: Connect and request timeout for the Auth2 call, in seconds.
    """

    auth_url: str
    pod_owner: str | None = None
    pod_address: str | None = None
    bypass_policy: BypassPolicy = BypassPolicy.LOOPBACK
    timeout: float = DEFAULT_AUTH_TIMEOUT

    def __post_init__(self):
        if not self.auth_url or not self.auth_url.strip():
            raise ConfigurationError(
                f"{ENV_KBASE_AUTH_URL} environment variable is required but not set. "
                "Please configure the KBase Auth2 service URL."
            )
        if self.timeout <= 0:
            raise ConfigurationError(f"Auth timeout must be positive, got {self.timeout}")
        if self.bypass_policy is BypassPolicy.LOOPBACK_AND_POD and not self.pod_address:
            raise ConfigurationError(
                f"Bypass policy '{self.bypass_policy.value}' requires {ENV_POD_IP} to be set"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AuthGateConfig":
        """Build the configuration from environment variables."""
        env = os.environ if environ is None else environ

        timeout_value = env.get(ENV_KBASE_AUTH_TIMEOUT)
        try:
            timeout = float(timeout_value) if timeout_value else DEFAULT_AUTH_TIMEOUT
        except ValueError:
            raise ConfigurationError(
                f"Invalid {ENV_KBASE_AUTH_TIMEOUT} value '{timeout_value}'"
            ) from None

        return cls(
            auth_url=env.get(ENV_KBASE_AUTH_URL, ""),
            pod_owner=env.get(ENV_POD_OWNER) or None,
            pod_address=env.get(ENV_POD_IP) or None,
            bypass_policy=BypassPolicy.parse(env.get(ENV_SAME_ORIGIN_BYPASS)),
            timeout=timeout,
        )


@dataclass(frozen=True)
class NamespaceGuardConfig:
    """
    Configuration for NamespaceValidationInterceptor.

    An empty prefix tuple is valid: only the ``default`` database can then be
    created.
    """

    allowed_prefixes: tuple[str, ...] = ()

    def __post_init__(self):
        for prefix in self.allowed_prefixes:
            if not isinstance(prefix, str) or not prefix.strip():
                raise ConfigurationError(
                    f"Allowed namespace prefixes must be non-blank strings, got {prefix!r}"
                )

    @classmethod
    def from_prefix_list(cls, value: str | None) -> "NamespaceGuardConfig":
        """Parse a comma-separated prefix list, dropping blank entries."""
        if value is None or not value.strip():
            return cls()
        prefixes = tuple(p.strip() for p in value.split(",") if p.strip())
        return cls(allowed_prefixes=prefixes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "NamespaceGuardConfig":
        """Build the configuration from environment variables."""
        env = os.environ if environ is None else environ
        value = env.get(ENV_ALLOWED_NAMESPACE_PREFIXES)
        if value is None or not value.strip():
            logger.warning(
                f"{ENV_ALLOWED_NAMESPACE_PREFIXES} not set. "
                "All CREATE DATABASE statements will be rejected except for 'default'."
            )
        return cls.from_prefix_list(value)
