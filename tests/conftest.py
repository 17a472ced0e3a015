import os
import socket
from pathlib import Path

import pytest

SYSCTL_ICMP_IGNORE_PATH = Path("/proc/sys/net/ipv4/icmp_echo_ignore_all")


def _read_icmp_echo_ignore_all() -> int | None:
    try:
        return int(SYSCTL_ICMP_IGNORE_PATH.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


@pytest.fixture
def require_root() -> None:
    if not hasattr(os, "geteuid"):
        pytest.skip("requires POSIX geteuid support")
    if os.geteuid() != 0:
        pytest.skip("requires root privileges for raw ICMP sockets")


@pytest.fixture
def require_icmp_echo_answered() -> None:
    if _read_icmp_echo_ignore_all() == 1:
        pytest.skip(
            "requires the kernel to answer pings; "
            "run: sudo sysctl -w net.ipv4.icmp_echo_ignore_all=0"
        )


@pytest.fixture
def require_ipv6_loopback() -> None:
    if not socket.has_ipv6:
        pytest.skip("requires IPv6 support")
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_DGRAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        pytest.skip("requires an IPv6 loopback address")
