from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar

from .errors import DecodeError, Timeout, TransportError
from .icmp import EchoBody, ICMPMessage, decode, echo_request_type, encode, strip_ipv4_header
from .metrics import DECODE_ERRORS, PACKETS_RECEIVED, PACKETS_SENT, REQUESTS_SKIPPED, TIMEOUTS, Metrics

LOGGER = logging.getLogger("icmp_echo.session")

DEFAULT_BUFFER_SIZE = 1500

_T = TypeVar("_T")


class Transport(Protocol):
    def write(self, data: bytes) -> int: ...

    def write_to(self, data: bytes, addr: Any) -> int: ...

    def read(self, buffer: bytearray) -> int: ...

    def set_deadline(self, deadline: float | None) -> None: ...


class DecodeErrorPolicy(str, Enum):
    ABORT = "abort"
    SKIP = "skip"


class SessionState(Enum):
    IDLE = "idle"
    SENT = "sent"
    FILTERING = "filtering"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class EchoRequestKey:
    identifier: int
    sequence: int

    def matches(self, message: ICMPMessage, *, strict: bool = True) -> bool:
        """Compare the echoed fields of ``message`` with this key.

        With ``strict=False`` only the identifier has to match.
        """
        body = message.body
        if not isinstance(body, EchoBody):
            return False
        if body.identifier != self.identifier:
            return False
        return not strict or body.sequence == self.sequence


@dataclass(frozen=True)
class EchoResult:
    message: ICMPMessage
    rtt_s: float
    matched: bool


class EchoSession:
    """Drives Echo request/reply exchanges over a caller-owned transport.

    The session is synchronous and holds no socket state of its own: every
    call blocks until the transport delivers or its deadline fires, and
    transport errors are raised straight to the caller without retries.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        decode_error_policy: DecodeErrorPolicy = DecodeErrorPolicy.ABORT,
        ipv4_header: bool = False,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        metrics: Metrics | None = None,
    ) -> None:
        self.transport = transport
        self.decode_error_policy = DecodeErrorPolicy(decode_error_policy)
        self.ipv4_header = ipv4_header
        self.buffer_size = max(1, buffer_size)
        self.metrics = metrics if metrics is not None else Metrics()
        self.state = SessionState.IDLE

    def _transport_call(self, call: Callable[..., _T], *args) -> _T:
        try:
            return call(*args)
        except Timeout:
            self.state = SessionState.TIMED_OUT
            self.metrics.inc(TIMEOUTS)
            raise
        except TimeoutError as exc:
            self.state = SessionState.TIMED_OUT
            self.metrics.inc(TIMEOUTS)
            raise Timeout("i/o deadline exceeded") from exc
        except TransportError:
            self.state = SessionState.FAILED
            raise
        except OSError as exc:
            self.state = SessionState.FAILED
            raise TransportError(str(exc)) from exc

    def send(
        self,
        target: Any,
        message_type: int,
        key: EchoRequestKey,
        payload: bytes = b"",
    ) -> int:
        """Encode an Echo message for ``key`` and write it.

        ``target`` is handed to ``transport.write_to``; pass None to use
        ``transport.write`` on a connected transport.
        """
        message = ICMPMessage(
            icmp_type=message_type,
            icmp_code=0,
            body=EchoBody(identifier=key.identifier, sequence=key.sequence, data=payload),
        )
        data = encode(message)
        if target is None:
            written = self._transport_call(self.transport.write, data)
        else:
            written = self._transport_call(self.transport.write_to, data, target)
        self.state = SessionState.SENT
        self.metrics.inc(PACKETS_SENT)
        LOGGER.debug(
            "sent type=%d id=%d seq=%d bytes=%d to %s",
            message_type,
            key.identifier,
            key.sequence,
            written,
            target if target is not None else "connected peer",
        )
        return written

    def receive_matching(self, key: EchoRequestKey, buffer: bytearray | None = None) -> ICMPMessage:
        """Read packets until one is not an Echo Request and return it.

        Echo Requests on the wire (other pingers, or our own packet looped
        back) are skipped. Nothing bounds the loop except the transport
        deadline, so a medium that only ever carries requests keeps us here
        until the deadline fires. Comparing the reply with ``key`` is left to
        the caller through :meth:`EchoRequestKey.matches`.
        """
        if buffer is None:
            buffer = bytearray(self.buffer_size)
        self.state = SessionState.FILTERING
        while True:
            nbytes = self._transport_call(self.transport.read, buffer)
            packet = bytes(memoryview(buffer)[:nbytes])
            if self.ipv4_header:
                packet = strip_ipv4_header(packet)

            try:
                message = decode(packet)
            except DecodeError as exc:
                self.metrics.inc(DECODE_ERRORS)
                if self.decode_error_policy is DecodeErrorPolicy.SKIP:
                    LOGGER.debug("skipping undecodable packet bytes=%d: %s", nbytes, exc)
                    continue
                self.state = SessionState.FAILED
                raise

            if message.is_echo_request:
                self.metrics.inc(REQUESTS_SKIPPED)
                LOGGER.debug("skipping echo request type=%d", message.icmp_type)
                continue

            self.metrics.inc(PACKETS_RECEIVED)
            self.state = SessionState.MATCHED
            if not key.matches(message):
                LOGGER.debug(
                    "received type=%d code=%d not matching id=%d seq=%d",
                    message.icmp_type,
                    message.icmp_code,
                    key.identifier,
                    key.sequence,
                )
            return message

    def ping(
        self,
        target: Any,
        key: EchoRequestKey,
        payload: bytes = b"",
        *,
        timeout_s: float = 1.0,
        strict: bool = True,
        wait_for_match: bool = True,
    ) -> EchoResult:
        """Send one Echo Request and wait for its reply.

        With ``wait_for_match`` replies that do not match ``key`` are
        discarded until a matching one arrives or the deadline fires;
        otherwise the first reply is returned with ``matched`` set accordingly.
        The transport deadline is cleared again before returning.
        """
        family = getattr(target, "family", None) or getattr(self.transport, "family", socket.AF_INET)
        started = time.monotonic()
        self.transport.set_deadline(started + timeout_s)
        try:
            self.send(target, echo_request_type(family), key, payload)
            buffer = bytearray(self.buffer_size)
            while True:
                message = self.receive_matching(key, buffer)
                matched = key.matches(message, strict=strict)
                if matched or not wait_for_match:
                    break
        finally:
            self.transport.set_deadline(None)
        return EchoResult(message=message, rtt_s=time.monotonic() - started, matched=matched)
