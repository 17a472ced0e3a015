from __future__ import annotations

import ipaddress
import logging
import socket
import time
from typing import Callable, TypeVar

from .errors import Timeout, TransportError
from .network import IPAddr, network_family, resolve_ip_addr

LOGGER = logging.getLogger("icmp_echo.transport")

_T = TypeVar("_T")


def _open_raw_socket(family: int) -> socket.socket:
    proto = socket.IPPROTO_ICMPV6 if family == socket.AF_INET6 else socket.IPPROTO_ICMP
    try:
        return socket.socket(family, socket.SOCK_RAW, proto)
    except PermissionError as exc:
        LOGGER.error("raw ICMP socket requires elevated privileges (root/CAP_NET_RAW)")
        raise TransportError(f"open raw socket: {exc}") from exc
    except OSError as exc:
        raise TransportError(f"open raw socket: {exc}") from exc


def _addr_from_sockaddr(sockaddr: tuple) -> IPAddr:
    host, _sep, zone = sockaddr[0].partition("%")
    if not zone and len(sockaddr) >= 4 and sockaddr[3]:
        zone = str(sockaddr[3])
    return IPAddr(ip=ipaddress.ip_address(host), zone=zone)


class RawSocketTransport:
    """Whole-message ICMP transport over a raw socket.

    Reads and writes honour a single monotonic-clock deadline set with
    :meth:`set_deadline`; once it has passed every blocking call raises
    :class:`Timeout` instead of waiting.
    """

    def __init__(
        self,
        family: int,
        *,
        sock: socket.socket | None = None,
        remote: IPAddr | None = None,
    ) -> None:
        self.family = family
        self.socket = sock if sock is not None else _open_raw_socket(family)
        self.remote = remote
        self._deadline: float | None = None

    @classmethod
    def open(
        cls,
        network: str,
        *,
        local_address: str | None = None,
        remote_address: str | None = None,
    ) -> "RawSocketTransport":
        transport = cls(network_family(network))
        try:
            if local_address:
                local = resolve_ip_addr(network, local_address)
                transport.socket.bind(local.sockaddr())
            if remote_address:
                remote = resolve_ip_addr(network, remote_address)
                transport.socket.connect(remote.sockaddr())
                transport.remote = remote
        except OSError as exc:
            transport.close()
            raise TransportError(f"setup {network} transport: {exc}") from exc
        except Exception:
            transport.close()
            raise
        LOGGER.debug(
            "opened %s transport local=%s remote=%s",
            network,
            local_address or "*",
            transport.remote,
        )
        return transport

    def set_deadline(self, deadline: float | None) -> None:
        """Set the ``time.monotonic()`` instant after which I/O fails; None clears it."""
        self._deadline = deadline

    def _apply_deadline(self) -> None:
        if self._deadline is None:
            self.socket.settimeout(None)
            return
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise Timeout("i/o deadline exceeded")
        self.socket.settimeout(remaining)

    def _io(self, call: Callable[..., _T], *args) -> _T:
        self._apply_deadline()
        try:
            return call(*args)
        except socket.timeout as exc:
            raise Timeout("i/o deadline exceeded") from exc
        except OSError as exc:
            raise TransportError(str(exc)) from exc

    def write(self, data: bytes) -> int:
        if self.remote is None:
            raise TransportError("transport is not connected")
        return self._io(self.socket.send, data)

    def write_to(self, data: bytes, addr: IPAddr) -> int:
        return self._io(self.socket.sendto, data, addr.sockaddr())

    def read(self, buffer: bytearray) -> int:
        return self._io(self.socket.recv_into, buffer)

    def read_from(self, buffer: bytearray) -> tuple[int, IPAddr]:
        nbytes, sockaddr = self._io(self.socket.recvfrom_into, buffer)
        return nbytes, _addr_from_sockaddr(sockaddr)

    def close(self) -> None:
        self.socket.close()

    def __enter__(self) -> "RawSocketTransport":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
