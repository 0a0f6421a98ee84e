"""
Directive resolution: per-request header first, process default second.
"""

from dataclasses import dataclass
from typing import Mapping, NamedTuple

import httpx


class Directive(NamedTuple):
    header: str
    default_key: str


DELAY = Directive("X-Echo-Delay", "ECHO_DELAY")
JITTER = Directive("X-Echo-Jitter", "ECHO_JITTER")
RANDOM_DELAY = Directive("X-Echo-Random-Delay", "ECHO_RANDOM_DELAY")
EXPONENTIAL = Directive("X-Echo-Exponential", "ECHO_EXPONENTIAL")
LATENCY = Directive("X-Echo-Latency", "ECHO_LATENCY")
STATUS = Directive("X-Echo-Status", "ECHO_STATUS")
ERROR = Directive("X-Echo-Error", "ECHO_ERROR")
CHAOS = Directive("X-Echo-Chaos", "ECHO_CHAOS")
SERVER_INFO = Directive("X-Echo-Server-Info", "ECHO_SERVER_INFO")

RESPONSE_SIZE_HEADER = "X-Echo-Response-Size"
COMPRESS_HEADER = "X-Echo-Compress"
CONTENT_TYPE_HEADER = "X-Echo-Content-Type"
ECHO_HEADERS_HEADER = "X-Echo-Headers"
SET_HEADER_PREFIX = "x-echo-set-header-"


def resolve(headers: httpx.Headers, defaults: Mapping[str, str], directive: Directive) -> str:
    """Return the first non-empty header value, else the default (possibly "")."""
    for value in headers.get_list(directive.header):
        if value:
            return value
    return defaults.get(directive.default_key, "")


@dataclass(frozen=True)
class ResolvedDirectives:
    delay: str = ""
    jitter: str = ""
    random_delay: str = ""
    exponential: str = ""
    latency: str = ""
    status: str = ""
    error: str = ""
    chaos: str = ""
    server_info: str = ""

    @classmethod
    def resolve(cls, headers: httpx.Headers, defaults: Mapping[str, str]) -> "ResolvedDirectives":
        return cls(
            delay=resolve(headers, defaults, DELAY),
            jitter=resolve(headers, defaults, JITTER),
            random_delay=resolve(headers, defaults, RANDOM_DELAY),
            exponential=resolve(headers, defaults, EXPONENTIAL),
            latency=resolve(headers, defaults, LATENCY),
            status=resolve(headers, defaults, STATUS),
            error=resolve(headers, defaults, ERROR),
            chaos=resolve(headers, defaults, CHAOS),
            server_info=resolve(headers, defaults, SERVER_INFO),
        )
