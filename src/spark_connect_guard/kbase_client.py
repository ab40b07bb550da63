"""
KBase Auth2 client used by the server-side authentication interceptor.

Tokens are exchanged for a username with ``GET <auth_url>/api/V2/token``.
Every failure mode (transport, HTTP status, body) raises a subclass of
KBaseAuthError so that callers can log the precise cause and still treat
them all as one verification failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from spark_connect_guard.config import DEFAULT_AUTH_TIMEOUT

logger = logging.getLogger(__name__)


TOKEN_ENDPOINT = "api/V2/token"


@dataclass(frozen=True)
class KBaseTokenInfo:
    """
    Identity resolved from a KBase token.

    Attributes:
        user: The username associated with the token.
        token_id: The unique identifier for the token, if reported.
        token_type: The type of token (e.g., 'Login', 'Developer', 'Service').
        expires: When the token expires, if reported.
        custom_roles: Custom roles assigned to the user.
    """

    user: str
    token_id: str | None = None
    token_type: str | None = None
    expires: datetime | None = None
    custom_roles: tuple[str, ...] = field(default_factory=tuple)


class KBaseAuthError(Exception):
    """Exception raised when a token cannot be verified."""

    pass


class VerificationTransportError(KBaseAuthError):
    """The Auth2 service could not be reached or did not answer in time."""

    pass


class VerificationStatusError(KBaseAuthError):
    """The Auth2 service answered with a non-200 status."""

    def __init__(self, status_code: int):
        super().__init__(f"KBase auth service returned status {status_code}")
        self.status_code = status_code


class VerificationBodyError(KBaseAuthError):
    """The Auth2 response body is empty or does not carry a username."""

    pass


def token_endpoint(auth_url: str) -> str:
    """Join the Auth2 base URL and the token endpoint with exactly one slash."""
    return auth_url + ("" if auth_url.endswith("/") else "/") + TOKEN_ENDPOINT


class KBaseAuthClient:
    """
    Client for the KBase Auth2 token endpoint.

    Example:
        client = KBaseAuthClient("https://kbase.us/services/auth")
        username = client.get_username("my-kbase-token")
    """

    def __init__(self, auth_url: str, timeout: float = DEFAULT_AUTH_TIMEOUT):
        """
        Initialize the KBase Auth client.

        Args:
            auth_url: URL of the KBase Auth2 service.
            timeout: Connect and per-request timeout in seconds.
        """
        self._auth_url = auth_url
        self._endpoint = token_endpoint(auth_url)
        self._timeout = httpx.Timeout(timeout, connect=timeout)

    @property
    def auth_url(self) -> str:
        """Get the Auth2 service URL."""
        return self._auth_url

    @property
    def endpoint(self) -> str:
        """Get the token validation endpoint."""
        return self._endpoint

    def validate_token(self, token: str) -> KBaseTokenInfo:
        """
        Validate a KBase token and retrieve token information.

        The token is sent verbatim in the Authorization header.

        Raises:
            VerificationTransportError: If the request fails or times out.
            VerificationStatusError: If the service does not answer 200.
            VerificationBodyError: If the body is empty or malformed.
        """
        try:
            response = httpx.get(
                self._endpoint,
                headers={"Authorization": token},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise VerificationTransportError(
                "Request to authentication service timed out"
            ) from e
        except httpx.HTTPError as e:
            raise VerificationTransportError(
                f"Failed to connect to authentication service: {e}"
            ) from e

        if response.status_code != 200:
            raise VerificationStatusError(response.status_code)

        if not response.text or not response.text.strip():
            raise VerificationBodyError("KBase auth service returned an empty response body")

        try:
            data = response.json()
        except ValueError as e:
            raise VerificationBodyError(f"Invalid response from authentication service: {e}") from e

        return parse_token_response(data)

    def get_username(self, token: str) -> str:
        """Validate a token and return just the username."""
        return self.validate_token(token).user


def _parse_timestamp(value: Any) -> datetime | None:
    """Decode a millisecond epoch timestamp. Unrepresentable values decode to None."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        return datetime.fromtimestamp(value / 1000)
    except (OverflowError, OSError, ValueError):
        logger.debug(f"Ignoring unrepresentable token expiry: {value!r}")
        return None


def parse_token_response(data: Any) -> KBaseTokenInfo:
    """Decode an Auth2 token response. Only a string ``user`` field is required."""
    if not isinstance(data, dict):
        raise VerificationBodyError("Token response is not a JSON object")

    user = data.get("user")
    if not isinstance(user, str) or not user:
        raise VerificationBodyError("Field 'user' not found in token response")

    roles = data.get("customroles")
    return KBaseTokenInfo(
        user=user,
        token_id=data.get("id") if isinstance(data.get("id"), str) else None,
        token_type=data.get("type") if isinstance(data.get("type"), str) else None,
        expires=_parse_timestamp(data.get("expires")),
        custom_roles=tuple(r for r in roles if isinstance(r, str)) if isinstance(roles, list) else (),
    )
