"""Tests for address helpers, DNS checks and remote bash."""
import asyncio
import socket

import pytest

from bigip_onboard.reconcile.constants import PATHS
from bigip_onboard.reconcile.errors import ResolutionError
from bigip_onboard.reconcile.util import (
    check_dns_resolution,
    execute_bash_command_remote,
    is_ip,
    is_ipv4,
    minimize_ip,
    needs_update,
    split_route_domain,
    strip_cidr,
    version_at_least,
)
from bigip_onboard.utils.connection import NO_RETRY, RetryPolicy


class TestAddresses:
    """Tests for address helpers."""

    def test_strip_cidr(self):
        assert strip_cidr("1.2.3.4/24") == "1.2.3.4"
        assert strip_cidr("2001:db8::1/64") == "2001:db8::1"
        assert strip_cidr("1.2.3.4") == "1.2.3.4"

    def test_route_domain(self):
        assert split_route_domain("10.0.0.1%2") == ("10.0.0.1", "%2")
        assert split_route_domain("10.0.0.1") == ("10.0.0.1", "")
        assert is_ip("10.0.0.1%2")

    def test_is_ip(self):
        assert is_ip("10.0.0.1")
        assert is_ip("::1")
        assert not is_ip("bigip1.example.com")
        assert not is_ip("10.0.0.1/24")
        assert not is_ip(None)

    def test_is_ipv4(self):
        assert is_ipv4("10.0.0.1/24")
        assert not is_ipv4("2001:db8::1")

    def test_minimize_ip(self):
        assert minimize_ip("2001:0db8:0000:0000:0000:0000:0000:0001") == "2001:db8::1"
        assert minimize_ip("fe80:0::1%3") == "fe80::1%3"
        assert minimize_ip("bigip1") == "bigip1"


class TestComparisons:
    """Tests for version and diff helpers."""

    def test_version_at_least(self):
        assert version_at_least("14.1.0.3", "14.0")
        assert version_at_least("14.0", "14.0")
        assert not version_at_least("13.1.1", "14.0")
        assert not version_at_least(None, "14.0")

    def test_needs_update(self):
        assert needs_update("a", "b")
        assert needs_update(False, None)
        assert not needs_update(None, "b")
        assert not needs_update("a", "a")


class TestDnsResolution:
    """Tests for check_dns_resolution."""

    @pytest.mark.asyncio
    async def test_ip_skips_lookup(self, monkeypatch):
        async def fail(*args, **kwargs):
            raise AssertionError("lookup should not happen")

        monkeypatch.setattr(asyncio.get_running_loop(), "getaddrinfo", fail)
        assert await check_dns_resolution("10.0.0.1") is True

    @pytest.mark.asyncio
    async def test_hostname_resolves(self, monkeypatch):
        async def resolve(host, port, *args, **kwargs):
            return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.2", 0))]

        monkeypatch.setattr(asyncio.get_running_loop(), "getaddrinfo", resolve)
        assert await check_dns_resolution("bigip2.example.com", NO_RETRY) is True

    @pytest.mark.asyncio
    async def test_unresolvable_after_retries(self, monkeypatch):
        """Lookups are retried, then fail with a 424."""
        calls = []

        async def fail(host, port, *args, **kwargs):
            calls.append(host)
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        monkeypatch.setattr(asyncio.get_running_loop(), "getaddrinfo", fail)
        with pytest.raises(ResolutionError) as exc_info:
            await check_dns_resolution("bigip2.invalid", RetryPolicy(max_retries=1, retry_interval=0))
        assert exc_info.value.code == 424
        assert "bigip2.invalid" in str(exc_info.value)
        assert len(calls) == 2


class TestRemoteBash:
    """Tests for execute_bash_command_remote."""

    @pytest.mark.asyncio
    async def test_wraps_command(self, gateway):
        gateway.create.return_value = {"commandResult": "ok\n"}
        assert await execute_bash_command_remote(gateway, "ls /config") == "ok\n"
        args, kwargs = gateway.create.call_args
        assert args == (PATHS.Bash, {"command": "run", "utilCmdArgs": '-c "ls /config"'})

    @pytest.mark.asyncio
    async def test_no_output(self, gateway):
        assert await execute_bash_command_remote(gateway, "true") == ""
