from __future__ import annotations

import socket
import struct
from dataclasses import dataclass
from enum import IntEnum

from .errors import EncodingError, TooShortError

ICMP_HEADER_STRUCT = struct.Struct("!BBH")
ICMP_HEADER_LEN = ICMP_HEADER_STRUCT.size
ECHO_HEADER_STRUCT = struct.Struct("!HH")
ECHO_HEADER_LEN = ECHO_HEADER_STRUCT.size
IPV4_MIN_HEADER_LEN = 20


class MessageType(IntEnum):
    IPV4_ECHO_REPLY = 0
    IPV4_ECHO_REQUEST = 8
    IPV6_ECHO_REQUEST = 128
    IPV6_ECHO_REPLY = 129


ECHO_TYPES = frozenset(MessageType)
ECHO_REQUEST_TYPES = frozenset({MessageType.IPV4_ECHO_REQUEST, MessageType.IPV6_ECHO_REQUEST})
ECHO_REPLY_TYPES = frozenset({MessageType.IPV4_ECHO_REPLY, MessageType.IPV6_ECHO_REPLY})
# The kernel fills in the ICMPv6 checksum since it covers the IPv6 pseudo-header.
IPV6_ECHO_TYPES = frozenset({MessageType.IPV6_ECHO_REQUEST, MessageType.IPV6_ECHO_REPLY})


def is_echo_request(icmp_type: int) -> bool:
    return icmp_type in ECHO_REQUEST_TYPES


def is_echo_reply(icmp_type: int) -> bool:
    return icmp_type in ECHO_REPLY_TYPES


def echo_request_type(family: int) -> MessageType:
    if family == socket.AF_INET6:
        return MessageType.IPV6_ECHO_REQUEST
    if family == socket.AF_INET:
        return MessageType.IPV4_ECHO_REQUEST
    raise ValueError(f"unsupported address family {family}")


def strip_ipv4_header(buf: bytes) -> bytes:
    """Return the ICMP message carried in ``buf``.

    IPv4 raw sockets hand back the IP header in front of the ICMP message.
    Anything that does not look like an IPv4 header is returned unchanged.
    """
    if len(buf) < IPV4_MIN_HEADER_LEN:
        return buf

    first_byte = buf[0]
    version = first_byte >> 4
    ihl = first_byte & 0x0F
    ipv4_header_len = ihl * 4
    if version == 4 and ihl >= 5 and len(buf) >= ipv4_header_len:
        return buf[ipv4_header_len:]

    return buf


def _ones_complement_sum(data: bytes) -> int:
    if len(data) % 2:
        data = bytes(data) + b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return total & 0xFFFF


def internet_checksum(data: bytes) -> int:
    return ~_ones_complement_sum(data) & 0xFFFF


def verify_checksum(data: bytes) -> bool:
    """Check an encoded message the way a receiver would.

    IPv6 Echo messages always pass since their checksum is owned by the kernel.
    """
    if len(data) < ICMP_HEADER_LEN:
        raise TooShortError("message too short")
    if data[0] in IPV6_ECHO_TYPES:
        return True
    return _ones_complement_sum(data) == 0xFFFF


@dataclass(frozen=True)
class EchoBody:
    identifier: int
    sequence: int
    data: bytes = b""

    def __len__(self) -> int:
        return ECHO_HEADER_LEN + len(self.data)

    def to_bytes(self) -> bytes:
        try:
            header = ECHO_HEADER_STRUCT.pack(self.identifier, self.sequence)
            data = memoryview(self.data).tobytes()
        except (struct.error, TypeError) as exc:
            raise EncodingError(f"invalid echo body: {exc}") from exc
        return header + data

    @staticmethod
    def from_bytes(buf: bytes) -> "EchoBody":
        if len(buf) < ECHO_HEADER_LEN:
            raise TooShortError("echo body too short")
        identifier, sequence = ECHO_HEADER_STRUCT.unpack_from(buf)
        return EchoBody(
            identifier=identifier,
            sequence=sequence,
            data=bytes(buf[ECHO_HEADER_LEN:]),
        )


@dataclass(frozen=True)
class ICMPMessage:
    icmp_type: int
    icmp_code: int
    body: EchoBody | None = None
    checksum: int = 0

    @property
    def is_echo_request(self) -> bool:
        return is_echo_request(self.icmp_type)

    @property
    def is_echo_reply(self) -> bool:
        return is_echo_reply(self.icmp_type)

    def to_bytes(self) -> bytes:
        return encode(self)

    @staticmethod
    def from_bytes(buf: bytes) -> "ICMPMessage":
        return decode(buf)


def encode(message: ICMPMessage) -> bytes:
    """Encode ``message`` into its wire form.

    The checksum field starts out as ``message.checksum`` and the computed
    checksum is XOR'd into it rather than written over it. With the default
    seed of zero this gives the usual RFC 1071 checksum; a non-zero seed is
    folded into the sum and survives on the wire.
    """
    try:
        header = ICMP_HEADER_STRUCT.pack(message.icmp_type, message.icmp_code, message.checksum)
    except struct.error as exc:
        raise EncodingError(f"invalid icmp header: {exc}") from exc

    buf = bytearray(header)
    if message.body is not None:
        body = message.body.to_bytes()
        if body:
            buf += body

    if message.icmp_type in IPV6_ECHO_TYPES:
        return bytes(buf)

    checksum = internet_checksum(buf)
    buf[2] ^= checksum >> 8
    buf[3] ^= checksum & 0xFF
    return bytes(buf)


def decode(buf: bytes) -> ICMPMessage:
    """Parse ``buf`` as an ICMP message.

    The checksum is taken verbatim; use :func:`verify_checksum` to validate it.
    Types other than the four Echo types decode with no body.
    """
    if len(buf) < ICMP_HEADER_LEN:
        raise TooShortError("message too short")

    icmp_type, icmp_code, checksum = ICMP_HEADER_STRUCT.unpack_from(buf)
    body = None
    if len(buf) > ICMP_HEADER_LEN and icmp_type in ECHO_TYPES:
        body = EchoBody.from_bytes(buf[ICMP_HEADER_LEN:])
    return ICMPMessage(
        icmp_type=icmp_type,
        icmp_code=icmp_code,
        body=body,
        checksum=checksum,
    )
