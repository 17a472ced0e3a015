from __future__ import annotations


class ICMPEchoError(Exception):
    pass


class EncodingError(ICMPEchoError, ValueError):
    """A message body refused to encode."""


class DecodeError(ICMPEchoError, ValueError):
    """A received packet failed structural decoding."""


class TooShortError(DecodeError):
    """Fewer bytes than the header or body minimum."""


class TransportError(ICMPEchoError, OSError):
    """Opaque failure reported by the socket layer."""


class Timeout(TransportError, TimeoutError):
    """The deadline elapsed before a reply arrived."""


class UnknownNetworkError(ICMPEchoError, ValueError):
    def __init__(self, network: str) -> None:
        super().__init__(f"unknown network {network}")
        self.network = network


class AddressError(ICMPEchoError, ValueError):
    """No usable address for the requested network."""
