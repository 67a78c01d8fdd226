"""Tests for rate limit client keying behind trusted proxies."""

from unittest.mock import MagicMock

import pytest
from app import rate_limit


def _request(peer, forwarded=None):
    request = MagicMock()
    request.client.host = peer
    request.headers = {"x-forwarded-for": forwarded} if forwarded else {}
    return request


@pytest.fixture(autouse=True)
def reset_networks(monkeypatch):
    monkeypatch.delenv("TRUSTED_PROXY_CIDRS", raising=False)
    monkeypatch.setattr(rate_limit, "_trusted_networks", None)


class TestClientIP:
    def test_direct_client(self):
        assert rate_limit.get_client_ip(_request("203.0.113.7")) == "203.0.113.7"

    def test_forwarded_header_ignored_from_untrusted_peer(self):
        request = _request("203.0.113.7", forwarded="198.51.100.1")

        assert rate_limit.get_client_ip(request) == "203.0.113.7"

    def test_trusted_proxy_uses_leftmost_forwarded(self):
        request = _request("10.0.0.5", forwarded="198.51.100.1, 10.0.0.9")

        assert rate_limit.get_client_ip(request) == "198.51.100.1"

    def test_trusted_proxy_without_header(self):
        assert rate_limit.get_client_ip(_request("127.0.0.1")) == "127.0.0.1"

    def test_custom_cidrs_replace_defaults(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", "192.0.2.0/24, not-a-cidr")

        assert rate_limit.get_client_ip(_request("192.0.2.10", forwarded="198.51.100.1")) == "198.51.100.1"
        assert rate_limit.get_client_ip(_request("10.0.0.5", forwarded="198.51.100.1")) == "10.0.0.5"
