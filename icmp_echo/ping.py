from __future__ import annotations

import argparse
import dataclasses
import logging
import socket
import sys
import time

from ._version import __version__
from .config import PingConfig, load_ping_config
from .errors import ICMPEchoError, Timeout
from .network import resolve_ip_addr
from .session import DecodeErrorPolicy, EchoRequestKey, EchoSession
from .transport import RawSocketTransport

LOGGER = logging.getLogger("icmp_echo.ping")


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send ICMP Echo Requests over a raw socket.")
    parser.add_argument("host", help="target address or host name")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("-n", "--network", help="raw network, e.g. ip4:icmp or ip6:ipv6-icmp")
    parser.add_argument("-c", "--count", type=int, help="number of requests to send")
    parser.add_argument("-W", "--timeout-ms", type=int, help="per-request reply deadline")
    parser.add_argument("-i", "--interval-ms", type=int, help="pause between requests")
    parser.add_argument("-I", "--bind-host", help="local address to bind")
    parser.add_argument(
        "--decode-error-policy",
        choices=[policy.value for policy in DecodeErrorPolicy],
        help="abort on malformed packets or skip them",
    )
    return parser


def _apply_overrides(config: PingConfig, args: argparse.Namespace) -> PingConfig:
    overrides = {}
    for field_name in ("network", "count", "timeout_ms", "interval_ms", "bind_host"):
        value = getattr(args, field_name)
        if value is not None:
            overrides[field_name] = value
    if args.decode_error_policy is not None:
        overrides["decode_error_policy"] = DecodeErrorPolicy(args.decode_error_policy)
    if "count" in overrides:
        overrides["count"] = max(1, overrides["count"])
    return dataclasses.replace(config, **overrides)


def run(config: PingConfig, host: str) -> int:
    target = resolve_ip_addr(config.network, host)
    received = 0
    with RawSocketTransport.open(config.network, local_address=config.bind_host or None) as transport:
        session = EchoSession(
            transport,
            decode_error_policy=config.decode_error_policy,
            ipv4_header=transport.family == socket.AF_INET,
            buffer_size=config.buffer_size,
        )
        print(f"PING {host} ({target}): {len(config.payload)} data bytes")
        for index in range(config.count):
            key = EchoRequestKey(identifier=config.identifier, sequence=(index + 1) & 0xFFFF)
            try:
                result = session.ping(
                    target,
                    key,
                    config.payload,
                    timeout_s=config.timeout_ms / 1000.0,
                    strict=config.strict_match,
                )
            except Timeout:
                print(f"request timeout for icmp_seq={key.sequence}")
            else:
                received += 1
                body = result.message.body
                print(
                    f"{len(body) if body is not None else 0} bytes from {target}: "
                    f"icmp_seq={key.sequence} time={result.rtt_s * 1000.0:.3f} ms"
                )
            if index + 1 < config.count and config.interval_ms:
                time.sleep(config.interval_ms / 1000.0)
        LOGGER.debug("session counters:\n%s", session.metrics.render_text().rstrip())

    loss = 100.0 * (config.count - received) / config.count
    print(f"--- {host} ping statistics ---")
    print(f"{config.count} packets transmitted, {received} packets received, {loss:.1f}% packet loss")
    return 0 if received else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    try:
        config = _apply_overrides(load_ping_config(), args)
        configure_logging(config.common.log_level)
        return run(config, args.host)
    except (ICMPEchoError, ValueError) as exc:
        LOGGER.error("ping %s failed: %s", args.host, exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
