"""ICMP Echo engine package."""

from ._version import __version__

__all__ = ["EchoSession", "ICMPMessage", "RawSocketTransport", "__version__"]


def __getattr__(name: str):
    if name == "EchoSession":
        from .session import EchoSession

        return EchoSession
    if name == "ICMPMessage":
        from .icmp import ICMPMessage

        return ICMPMessage
    if name == "RawSocketTransport":
        from .transport import RawSocketTransport

        return RawSocketTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
