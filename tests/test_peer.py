"""Tests for peer address classification."""

import pytest

from spark_connect_guard.config import BypassPolicy
from spark_connect_guard.peer import (
    is_loopback,
    is_same_origin,
    normalize_address,
    parse_peer_address,
)


class TestParsePeerAddress:
    """Tests for parse_peer_address."""

    @pytest.mark.parametrize(
        "peer,expected",
        [
            ("ipv4:127.0.0.1:54321", "127.0.0.1"),
            ("ipv4:10.1.2.3:15002", "10.1.2.3"),
            ("ipv6:[::1]:54321", "::1"),
            ("ipv6:%5B::1%5D:54321", "::1"),
            ("ipv6:[::ffff:10.1.2.3]:54321", "::ffff:10.1.2.3"),
            ("ipv6:[fe80::1%25eth0]:54321", "fe80::1"),
        ],
    )
    def test_ip_peers(self, peer, expected):
        """Test IP peers are parsed to bare addresses."""
        assert parse_peer_address(peer) == expected

    @pytest.mark.parametrize("peer", [None, "", "unix:/tmp/grpc.sock", "ipv4:not-an-ip:1", "garbage"])
    def test_non_ip_peers(self, peer):
        """Test non-IP peers yield None."""
        assert parse_peer_address(peer) is None


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_ipv4_mapped_equals_ipv4(self):
        """Test IPv4-mapped IPv6 and plain IPv4 normalize to the same value."""
        assert normalize_address("::ffff:127.0.0.1") == normalize_address("127.0.0.1")

    def test_prefix_is_case_insensitive(self):
        """Test the mapped prefix is matched case-insensitively."""
        assert normalize_address("::FFFF:10.0.0.1") == "10.0.0.1"

    def test_plain_ipv6_unchanged(self):
        """Test other IPv6 addresses are left alone."""
        assert normalize_address("fd00::1") == "fd00::1"


class TestIsLoopback:
    """Tests for is_loopback."""

    @pytest.mark.parametrize("address", ["127.0.0.1", "127.8.9.10", "::1", "::ffff:127.0.0.1"])
    def test_loopback(self, address):
        assert is_loopback(address)

    @pytest.mark.parametrize("address", ["10.0.0.1", "fd00::1", "0.0.0.0", "localhost"])
    def test_not_loopback(self, address):
        assert not is_loopback(address)


class TestIsSameOrigin:
    """Tests for is_same_origin."""

    @pytest.mark.parametrize("peer", ["ipv4:127.0.0.1:1", "ipv6:[::1]:1"])
    def test_loopback_policy(self, peer):
        """Test loopback peers are same-origin under the default policy."""
        assert is_same_origin(peer, BypassPolicy.LOOPBACK)

    def test_none_policy(self):
        """Test nothing is same-origin when the bypass is disabled."""
        assert not is_same_origin("ipv4:127.0.0.1:1", BypassPolicy.NONE)

    def test_unix_peer_not_same_origin(self):
        """Test non-IP peers fall through to token checks."""
        assert not is_same_origin("unix:/tmp/sock", BypassPolicy.LOOPBACK)
        assert not is_same_origin(None, BypassPolicy.LOOPBACK)

    def test_pod_address_ignored_under_loopback_policy(self):
        """Test the pod address only matters under the pod policy."""
        assert not is_same_origin("ipv4:10.0.0.7:1", BypassPolicy.LOOPBACK, "10.0.0.7")

    @pytest.mark.parametrize(
        "peer", ["ipv4:10.0.0.7:1", "ipv6:[::ffff:10.0.0.7]:1", "ipv6:[::FFFF:10.0.0.7]:1"]
    )
    def test_pod_address_match(self, peer):
        """Test the pod's own address is same-origin under the pod policy."""
        assert is_same_origin(peer, BypassPolicy.LOOPBACK_AND_POD, "10.0.0.7")

    def test_pod_address_mismatch(self):
        """Test other pods are not same-origin."""
        assert not is_same_origin("ipv4:10.0.0.8:1", BypassPolicy.LOOPBACK_AND_POD, "10.0.0.7")

    def test_pod_policy_still_allows_loopback(self):
        assert is_same_origin("ipv4:127.0.0.1:1", BypassPolicy.LOOPBACK_AND_POD, "10.0.0.7")
