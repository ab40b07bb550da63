"""
Peer address helpers for same-origin classification.

gRPC reports the transport peer as ``ipv4:10.0.0.5:51234``,
``ipv6:[::1]:51234`` or ``unix:/path/to/socket``. Only IP peers can be
classified as same-origin; anything else falls through to token checks.
"""

import ipaddress
import logging
import urllib.parse

from spark_connect_guard.config import BypassPolicy

logger = logging.getLogger(__name__)


_IPV4_MAPPED_PREFIX = "::ffff:"


def parse_peer_address(peer: str | None) -> str | None:
    """
    Extract the IP address from a gRPC peer string.

    Returns:
        The bare address, or None for non-IP or unparseable peers.
    """
    if not peer:
        return None

    if peer.startswith("ipv4:"):
        host, _, _ = peer[len("ipv4:"):].rpartition(":")
    elif peer.startswith("ipv6:"):
        rest = urllib.parse.unquote(peer[len("ipv6:"):])
        if rest.startswith("["):
            host = rest[1:].split("]", 1)[0]
        else:
            host = rest
    else:
        return None

    # Drop an IPv6 zone id (fe80::1%eth0)
    host = host.split("%", 1)[0]
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return None
    return host


def normalize_address(address: str) -> str:
    """Strip an IPv4-mapped IPv6 prefix (``::ffff:``) so both spellings compare equal."""
    value = address.strip()
    if value.lower().startswith(_IPV4_MAPPED_PREFIX):
        return value[len(_IPV4_MAPPED_PREFIX):]
    return value


def is_loopback(address: str) -> bool:
    """Check for any loopback address, IPv4 or IPv6, including IPv4-mapped forms."""
    try:
        ip = ipaddress.ip_address(normalize_address(address))
    except ValueError:
        return False
    return ip.is_loopback


def is_same_origin(
    peer: str | None,
    policy: BypassPolicy,
    pod_address: str | None = None,
) -> bool:
    """
    Classify a gRPC peer as same-origin under the given bypass policy.

    Args:
        peer: The value of ``ServicerContext.peer()``.
        policy: Which peers may bypass token checks.
        pod_address: This server's own address, for ``LOOPBACK_AND_POD``.
    """
    if policy is BypassPolicy.NONE:
        return False

    address = parse_peer_address(peer)
    if address is None:
        return False

    if is_loopback(address):
        return True

    if policy is BypassPolicy.LOOPBACK_AND_POD and pod_address:
        return normalize_address(address) == normalize_address(pod_address)

    return False
