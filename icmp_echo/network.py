from __future__ import annotations

import ipaddress
import logging
import socket
from dataclasses import dataclass

from .errors import AddressError, UnknownNetworkError

LOGGER = logging.getLogger("icmp_echo.network")

IP_NETWORKS = ("ip", "ip4", "ip6")
PROTOCOL_NUMBERS: dict[str, int] = {
    "icmp": socket.IPPROTO_ICMP,
    "igmp": 2,
    "tcp": socket.IPPROTO_TCP,
    "udp": socket.IPPROTO_UDP,
    "ipv6-icmp": socket.IPPROTO_ICMPV6,
}


def parse_network(network: str) -> tuple[str, int]:
    """Split ``ip4:icmp`` style names into the IP network and a protocol number.

    An empty name means ``ip``. A missing protocol is reported as 0.
    """
    if not network:
        return "ip", 0

    afnet, sep, proto = network.partition(":")
    if afnet not in IP_NETWORKS:
        raise UnknownNetworkError(network)
    if not sep:
        return afnet, 0

    proto_number = PROTOCOL_NUMBERS.get(proto.lower())
    if proto_number is not None:
        return afnet, proto_number
    if proto.isdigit() and int(proto) <= 255:
        return afnet, int(proto)
    raise UnknownNetworkError(network)


def network_family(network: str) -> int:
    """Address family of a raw ICMP network name.

    Only ICMP protocols are usable, and the protocol has to agree with an
    explicit ``ip4``/``ip6`` prefix.
    """
    afnet, proto = parse_network(network)
    if proto not in (0, socket.IPPROTO_ICMP, socket.IPPROTO_ICMPV6):
        raise UnknownNetworkError(network)
    if afnet == "ip4" and proto == socket.IPPROTO_ICMPV6:
        raise UnknownNetworkError(network)
    if afnet == "ip6" and proto == socket.IPPROTO_ICMP:
        raise UnknownNetworkError(network)
    if afnet == "ip6" or proto == socket.IPPROTO_ICMPV6:
        return socket.AF_INET6
    return socket.AF_INET


@dataclass(frozen=True)
class IPAddr:
    ip: ipaddress.IPv4Address | ipaddress.IPv6Address
    zone: str = ""

    @property
    def family(self) -> int:
        if self.ip.version == 6:
            return socket.AF_INET6
        return socket.AF_INET

    def scope_id(self) -> int:
        if not self.zone:
            return 0
        if self.zone.isdigit():
            return int(self.zone)
        try:
            return socket.if_nametoindex(self.zone)
        except OSError as exc:
            raise AddressError(f"unknown zone {self.zone}") from exc

    def sockaddr(self) -> tuple:
        if self.ip.version == 6:
            return (str(self.ip), 0, 0, self.scope_id())
        return (str(self.ip), 0)

    def __str__(self) -> str:
        if self.zone:
            return f"{self.ip}%{self.zone}"
        return str(self.ip)


def _address_allowed(afnet: str, ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if afnet == "ip4":
        return ip.version == 4
    if afnet == "ip6":
        return ip.version == 6
    return True


def _lookup_host(afnet: str, host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    family = {"ip4": socket.AF_INET, "ip6": socket.AF_INET6}.get(afnet, socket.AF_UNSPEC)
    try:
        infos = socket.getaddrinfo(host, None, family, socket.SOCK_RAW)
    except socket.gaierror as exc:
        raise AddressError(f"lookup {host} failed: {exc}") from exc

    candidates = [ipaddress.ip_address(info[4][0].partition("%")[0]) for info in infos]
    candidates = [ip for ip in candidates if _address_allowed(afnet, ip)]
    if not candidates:
        raise AddressError(f"no suitable address found for {host}")
    # Plain "ip" prefers IPv4 when the name has both.
    candidates.sort(key=lambda ip: ip.version)
    LOGGER.debug("resolved %s to %s", host, candidates[0])
    return candidates[0]


def resolve_ip_addr(network: str, address: str) -> IPAddr:
    """Resolve a literal address or host name for a raw IP network.

    IPv6 literals may carry a zone (``fe80::1%eth0``), kept verbatim.
    """
    afnet, _proto = parse_network(network)
    host, _sep, zone = address.partition("%")

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        if zone:
            raise AddressError(f"zone on non-literal address {address}") from None
        ip = _lookup_host(afnet, host)
    else:
        if not _address_allowed(afnet, ip):
            raise AddressError(f"no suitable address found for {address} on {afnet}")

    if zone and ip.version != 6:
        raise AddressError(f"zone on ipv4 address {address}")
    return IPAddr(ip=ip, zone=zone)
