"""
Server configuration and the process-wide directive defaults.
"""

import os
import socket
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional


DEFAULT_KEYS = (
    "ECHO_DELAY",
    "ECHO_JITTER",
    "ECHO_RANDOM_DELAY",
    "ECHO_EXPONENTIAL",
    "ECHO_LATENCY",
    "ECHO_STATUS",
    "ECHO_ERROR",
    "ECHO_CHAOS",
    "ECHO_SERVER_INFO",
)
HEADER_DEFAULT_PREFIX = "ECHO_HEADER_"


class ConfigError(ValueError):
    """Raised for administrative default updates that cannot be applied."""


def is_default_key(key: str) -> bool:
    return key in DEFAULT_KEYS or (key.startswith(HEADER_DEFAULT_PREFIX) and len(key) > len(HEADER_DEFAULT_PREFIX))


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def _int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    enable_tls: bool = False
    cert_file: str = "server.crt"
    key_file: str = "server.key"
    enable_cors: bool = True
    log_level: str = "INFO"
    log_requests: bool = True
    log_headers: bool = False
    log_body: bool = False
    log_transaction: bool = False
    log_response: bool = False
    log_response_headers: bool = False
    log_response_body: bool = False
    max_body_size: int = 10 * 1024 * 1024
    max_log_body_size: int = 2048
    hostname: str = ""
    history_size: int = 100
    scenario_file: str = "scenarios.yaml"
    rate_limit_rps: float = 0.0
    rate_limit_burst: int = 0
    worker_threads: int = 1000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if environ is None else environ

        def get(key, default):
            # Empty values count as unset
            return env.get(key) or default

        return cls(
            host=get("HOST", "0.0.0.0"),
            port=_int(get("PORT", "8080")),
            enable_tls=_flag(get("ENABLE_TLS", "false")),
            cert_file=get("CERT_FILE", "server.crt"),
            key_file=get("KEY_FILE", "server.key"),
            enable_cors=_flag(get("ENABLE_CORS", "true")),
            log_level=get("LOG_LEVEL", "INFO").upper(),
            log_requests=_flag(get("LOG_REQUESTS", "true")),
            log_headers=_flag(get("LOG_HEADERS", "false")),
            log_body=_flag(get("LOG_BODY", "false")),
            log_transaction=_flag(get("LOG_TRANSACTION", "false")),
            log_response=_flag(get("LOG_RESPONSE", "false")),
            log_response_headers=_flag(get("LOG_RESPONSE_HEADERS", "false")),
            log_response_body=_flag(get("LOG_RESPONSE_BODY", "false")),
            max_body_size=_int(get("MAX_BODY_SIZE", "10485760")),
            max_log_body_size=_int(get("MAX_LOG_BODY_SIZE", "2048")),
            hostname=get("HOSTNAME", "") or socket.gethostname(),
            history_size=_int(get("ECHO_HISTORY_SIZE", "100")),
            scenario_file=get("ECHO_SCENARIO_FILE", "scenarios.yaml"),
            rate_limit_rps=_float(get("ECHO_RATE_LIMIT_RPS", "0")),
            rate_limit_burst=_int(get("ECHO_RATE_LIMIT_BURST", "0")),
            worker_threads=_int(get("ECHO_WORKER_THREADS", "1000")) or 1000,
        )


def defaults_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect the ECHO_* directive defaults present in the environment."""
    env = os.environ if environ is None else environ
    defaults = {}
    for key, value in env.items():
        if not value:
            continue
        if is_default_key(key):
            defaults[key] = value
    return defaults


class DefaultsStore:
    """
    Process-wide default directive values.

    Every request reads a snapshot; the admin endpoint swaps in a new one.
    Snapshots are read-only mappings, so a reader holding one never
    observes a half-applied update.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._lock = threading.Lock()
        self._snapshot = MappingProxyType(dict(initial or {}))

    def snapshot(self) -> Mapping[str, str]:
        with self._lock:
            return self._snapshot

    def update(self, changes: Mapping[str, Optional[str]]) -> Mapping[str, str]:
        """Apply changes; a None or empty value removes the default."""
        for key, value in changes.items():
            if not is_default_key(key):
                raise ConfigError(f"unknown default: {key}")
            if value is not None and not isinstance(value, (str, int, float)):
                raise ConfigError(f"invalid value for {key}")
        with self._lock:
            merged = dict(self._snapshot)
            for key, value in changes.items():
                if value is None or value == "":
                    merged.pop(key, None)
                else:
                    merged[key] = str(value)
            self._snapshot = MappingProxyType(merged)
            return self._snapshot
