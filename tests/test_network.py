import ipaddress
import socket

import pytest

from icmp_echo.errors import AddressError, UnknownNetworkError
from icmp_echo.network import IPAddr, network_family, parse_network, resolve_ip_addr


@pytest.mark.parametrize(
    ("network", "address", "expected"),
    [
        ("ip", "127.0.0.1", IPAddr(ipaddress.ip_address("127.0.0.1"))),
        ("ip4", "127.0.0.1", IPAddr(ipaddress.ip_address("127.0.0.1"))),
        ("ip4:icmp", "127.0.0.1", IPAddr(ipaddress.ip_address("127.0.0.1"))),
        ("ip", "::1", IPAddr(ipaddress.ip_address("::1"))),
        ("ip6", "::1", IPAddr(ipaddress.ip_address("::1"))),
        ("ip6:ipv6-icmp", "::1", IPAddr(ipaddress.ip_address("::1"))),
        ("ip6:IPv6-ICMP", "::1", IPAddr(ipaddress.ip_address("::1"))),
        ("ip", "::1%en0", IPAddr(ipaddress.ip_address("::1"), zone="en0")),
        ("ip6", "::1%911", IPAddr(ipaddress.ip_address("::1"), zone="911")),
        ("", "127.0.0.1", IPAddr(ipaddress.ip_address("127.0.0.1"))),
        ("", "::1", IPAddr(ipaddress.ip_address("::1"))),
    ],
)
def test_resolve_ip_addr_literals(network: str, address: str, expected: IPAddr) -> None:
    assert resolve_ip_addr(network, address) == expected


@pytest.mark.parametrize(
    ("network", "address"),
    [
        ("l2tp", "127.0.0.1"),
        ("l2tp:gre", "127.0.0.1"),
        ("tcp", "1.2.3.4:123"),
        ("ip4:bogus", "127.0.0.1"),
    ],
)
def test_resolve_ip_addr_unknown_networks(network: str, address: str) -> None:
    with pytest.raises(UnknownNetworkError) as excinfo:
        resolve_ip_addr(network, address)
    assert excinfo.value.network == network


def test_resolve_ip_addr_rejects_wrong_family() -> None:
    with pytest.raises(AddressError):
        resolve_ip_addr("ip4", "::1")
    with pytest.raises(AddressError):
        resolve_ip_addr("ip6", "127.0.0.1")


def test_resolve_ip_addr_rejects_ipv4_zone() -> None:
    with pytest.raises(AddressError):
        resolve_ip_addr("ip4", "127.0.0.1%eth0")


def test_resolve_ip_addr_prefers_ipv4_for_host_names(monkeypatch) -> None:
    def fake_getaddrinfo(host, port, family, socktype):
        assert host == "localhost"
        assert family == socket.AF_UNSPEC
        return [
            (socket.AF_INET6, socktype, 0, "", ("::1", 0, 0, 0)),
            (socket.AF_INET, socktype, 0, "", ("127.0.0.1", 0)),
        ]

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)

    assert resolve_ip_addr("ip", "localhost") == IPAddr(ipaddress.ip_address("127.0.0.1"))


def test_resolve_ip_addr_filters_host_names_by_network(monkeypatch) -> None:
    def fake_getaddrinfo(host, port, family, socktype):
        assert family == socket.AF_INET6
        return [(socket.AF_INET6, socktype, 0, "", ("::1", 0, 0, 0))]

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)

    assert resolve_ip_addr("ip6", "localhost") == IPAddr(ipaddress.ip_address("::1"))


def test_resolve_ip_addr_reports_lookup_failures(monkeypatch) -> None:
    def fake_getaddrinfo(host, port, family, socktype):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)

    with pytest.raises(AddressError, match="lookup nowhere.invalid failed"):
        resolve_ip_addr("ip4", "nowhere.invalid")


def test_parse_network() -> None:
    assert parse_network("ip4:icmp") == ("ip4", socket.IPPROTO_ICMP)
    assert parse_network("ip6:ipv6-icmp") == ("ip6", socket.IPPROTO_ICMPV6)
    assert parse_network("ip4:1") == ("ip4", 1)
    assert parse_network("ip") == ("ip", 0)
    assert parse_network("") == ("ip", 0)


def test_network_family() -> None:
    assert network_family("ip4:icmp") == socket.AF_INET
    assert network_family("ip6:ipv6-icmp") == socket.AF_INET6
    assert network_family("ip:ipv6-icmp") == socket.AF_INET6


def test_ip_addr_sockaddr_and_str() -> None:
    v4 = IPAddr(ipaddress.ip_address("192.0.2.1"))
    v6 = IPAddr(ipaddress.ip_address("fe80::1"), zone="7")

    assert v4.sockaddr() == ("192.0.2.1", 0)
    assert v4.family == socket.AF_INET
    assert v6.sockaddr() == ("fe80::1", 0, 0, 7)
    assert v6.family == socket.AF_INET6
    assert str(v6) == "fe80::1%7"


@pytest.mark.parametrize("network", ["ip4:udp", "ip4:tcp", "ip4:2", "ip:17", "ip6:tcp"])
def test_network_family_rejects_non_icmp_protocols(network: str) -> None:
    with pytest.raises(UnknownNetworkError) as excinfo:
        network_family(network)
    assert excinfo.value.network == network


@pytest.mark.parametrize("network", ["ip4:ipv6-icmp", "ip4:58", "ip6:icmp", "ip6:1"])
def test_network_family_rejects_mismatched_protocol(network: str) -> None:
    with pytest.raises(UnknownNetworkError):
        network_family(network)


def test_network_family_without_protocol() -> None:
    assert network_family("ip4") == socket.AF_INET
    assert network_family("ip6") == socket.AF_INET6
    assert network_family("ip") == socket.AF_INET
