from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock

PACKETS_SENT = "icmp_echo_packets_sent"
PACKETS_RECEIVED = "icmp_echo_packets_received"
REQUESTS_SKIPPED = "icmp_echo_requests_skipped"
DECODE_ERRORS = "icmp_echo_decode_errors"
TIMEOUTS = "icmp_echo_timeouts"


@dataclass
class Metrics:
    counters: Counter[str] = field(default_factory=Counter)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def inc(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] += value

    def get(self, name: str) -> int:
        with self._lock:
            return self.counters[name]

    def render_text(self) -> str:
        with self._lock:
            lines = [f"{name} {float(value):.1f}" for name, value in sorted(self.counters.items())]
        return "\n".join(lines) + "\n"
