from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

from .network import network_family
from .session import DecodeErrorPolicy

CONFIG_FILE_ENV = "ICMP_ECHO_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.ini"

_ENV_TO_INI_KEY: dict[str, tuple[str, str]] = {
    "ICMP_ECHO_LOG_LEVEL": ("common", "log_level"),
    "ICMP_ECHO_NETWORK": ("ping", "network"),
    "ICMP_ECHO_BIND_HOST": ("ping", "bind_host"),
    "ICMP_ECHO_IDENTIFIER": ("ping", "identifier"),
    "ICMP_ECHO_TIMEOUT_MS": ("ping", "timeout_ms"),
    "ICMP_ECHO_COUNT": ("ping", "count"),
    "ICMP_ECHO_INTERVAL_MS": ("ping", "interval_ms"),
    "ICMP_ECHO_PAYLOAD": ("ping", "payload"),
    "ICMP_ECHO_BUFFER_SIZE": ("ping", "buffer_size"),
    "ICMP_ECHO_DECODE_ERROR_POLICY": ("ping", "decode_error_policy"),
    "ICMP_ECHO_STRICT_MATCH": ("ping", "strict_match"),
}

_VALID_INI_KEYS: dict[str, set[str]] = {}
for section_name, key_name in _ENV_TO_INI_KEY.values():
    _VALID_INI_KEYS.setdefault(section_name, set()).add(key_name)


@dataclass(frozen=True)
class _ConfigResolver:
    ini_values: dict[tuple[str, str], str]

    @classmethod
    def from_environment(cls) -> "_ConfigResolver":
        return cls(ini_values=_load_ini_values())

    def raw(self, env_name: str) -> str | None:
        env_value = os.getenv(env_name)
        if env_value is not None:
            return env_value
        ini_key = _ENV_TO_INI_KEY.get(env_name)
        if ini_key is None:
            return None
        return self.ini_values.get(ini_key)

    def env_int(self, name: str, default: int) -> int:
        value = self.raw(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got {value!r}") from exc

    def env_str(self, name: str, default: str) -> str:
        value = self.raw(name)
        if value is None:
            return default
        return value

    def env_bool(self, name: str, default: bool) -> bool:
        value = self.raw(name)
        if value is None:
            return default
        normalized = value.strip().lower()
        return normalized not in {"0", "false", "no", "off"}


def _resolve_config_file_path() -> tuple[Path, bool]:
    configured_path = os.getenv(CONFIG_FILE_ENV)
    if configured_path is not None:
        normalized = configured_path.strip()
        if not normalized:
            raise ValueError(f"{CONFIG_FILE_ENV} is set but empty")
        return Path(normalized), True
    return Path(DEFAULT_CONFIG_FILE), False


def _load_ini_values() -> dict[tuple[str, str], str]:
    config_path, explicit = _resolve_config_file_path()
    if not config_path.exists():
        if explicit:
            raise ValueError(f"config file not found: {config_path}")
        return {}

    parser = configparser.ConfigParser(
        interpolation=None,
        default_section="__unused_defaults__",
    )
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            parser.read_file(config_file)
    except (OSError, configparser.Error) as exc:
        raise ValueError(f"failed to load config file {config_path}: {exc}") from exc

    ini_values: dict[tuple[str, str], str] = {}
    for section_name in parser.sections():
        section = section_name.strip().lower()
        valid_keys = _VALID_INI_KEYS.get(section)
        if valid_keys is None:
            raise ValueError(f"unknown config section [{section_name}] in {config_path}")

        for key_name, value in parser.items(section_name, raw=True):
            key = key_name.strip().lower()
            if key not in valid_keys:
                raise ValueError(f"unknown config key '{key_name}' in section [{section_name}] in {config_path}")
            ini_values[(section, key)] = value

    return ini_values


def default_identifier() -> int:
    return os.getpid() & 0xFFFF


@dataclass(frozen=True)
class CommonConfig:
    log_level: str


@dataclass(frozen=True)
class PingConfig:
    network: str
    bind_host: str
    identifier: int
    timeout_ms: int
    count: int
    interval_ms: int
    payload: bytes
    common: CommonConfig
    buffer_size: int = 1500
    decode_error_policy: DecodeErrorPolicy = DecodeErrorPolicy.ABORT
    strict_match: bool = True


def _load_common_config(resolver: _ConfigResolver) -> CommonConfig:
    return CommonConfig(
        log_level=resolver.env_str("ICMP_ECHO_LOG_LEVEL", "INFO").upper(),
    )


def load_common_config() -> CommonConfig:
    resolver = _ConfigResolver.from_environment()
    return _load_common_config(resolver)


def _load_decode_error_policy(resolver: _ConfigResolver) -> DecodeErrorPolicy:
    value = resolver.env_str("ICMP_ECHO_DECODE_ERROR_POLICY", DecodeErrorPolicy.ABORT.value)
    try:
        return DecodeErrorPolicy(value.strip().lower())
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in DecodeErrorPolicy)
        raise ValueError(f"ICMP_ECHO_DECODE_ERROR_POLICY must be one of {choices}, got {value!r}") from exc


def load_ping_config() -> PingConfig:
    resolver = _ConfigResolver.from_environment()
    network = resolver.env_str("ICMP_ECHO_NETWORK", "ip4:icmp").strip()
    network_family(network)
    identifier = resolver.env_int("ICMP_ECHO_IDENTIFIER", -1)
    if identifier < 0:
        identifier = default_identifier()
    return PingConfig(
        network=network,
        bind_host=resolver.env_str("ICMP_ECHO_BIND_HOST", ""),
        identifier=identifier & 0xFFFF,
        timeout_ms=max(1, resolver.env_int("ICMP_ECHO_TIMEOUT_MS", 1000)),
        count=max(1, resolver.env_int("ICMP_ECHO_COUNT", 4)),
        interval_ms=max(0, resolver.env_int("ICMP_ECHO_INTERVAL_MS", 1000)),
        payload=resolver.env_str("ICMP_ECHO_PAYLOAD", "icmp-echo ping payload").encode("utf-8"),
        common=_load_common_config(resolver),
        buffer_size=max(64, resolver.env_int("ICMP_ECHO_BUFFER_SIZE", 1500)),
        decode_error_policy=_load_decode_error_policy(resolver),
        strict_match=resolver.env_bool("ICMP_ECHO_STRICT_MATCH", True),
    )
