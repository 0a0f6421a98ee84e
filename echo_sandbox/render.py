"""
Response rendering for requests no other stage short-circuited.
"""

import gzip
import time
from typing import Mapping, Tuple

import httpx

from .config import HEADER_DEFAULT_PREFIX
from .directives import (
    COMPRESS_HEADER,
    CONTENT_TYPE_HEADER,
    ECHO_HEADERS_HEADER,
    RESPONSE_SIZE_HEADER,
    SET_HEADER_PREFIX,
    ResolvedDirectives,
)
from .models import EchoResponse, InboundRequest, request_dump
from .rng import SharedRandom

VERSION = "1.0.0"


def echo_content_type(request: InboundRequest) -> str:
    return (
        request.headers.get(CONTENT_TYPE_HEADER)
        or request.headers.get("Content-Type")
        or "text/plain"
    )


def echo_body(request: InboundRequest) -> Tuple[bytes, str]:
    """Bodyless GET gets a request dump, anything else gets its body back."""
    if request.method == "GET" and not request.body:
        return request_dump(request).encode(), "text/plain"
    return request.body, echo_content_type(request)


def _title(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))


class ResponseRenderer:
    def __init__(self, rng: SharedRandom, hostname: str = "", max_body_size: int = 0):
        self.rng = rng
        self.hostname = hostname
        self.max_body_size = max_body_size
        self.started = time.monotonic()

    def render(self, request: InboundRequest, directives: ResolvedDirectives,
               defaults: Mapping[str, str], count: int) -> EchoResponse:
        response = EchoResponse()
        self.custom_headers(request, directives, defaults, response.headers)
        response.headers["X-Echo-Request-Count"] = str(count)

        body, content_type = echo_body(request)
        if not (request.method == "GET" and not request.body):
            size = self._response_size(request)
            if size:
                body = self.rng.randbytes(size)
                content_type = "application/octet-stream"
        response.headers["Content-Type"] = content_type

        if request.headers.get(COMPRESS_HEADER, "").strip().lower() == "gzip":
            body = gzip.compress(body)
            response.headers["Content-Encoding"] = "gzip"

        response.body = body
        return response

    def _response_size(self, request: InboundRequest) -> int:
        try:
            size = int(request.headers.get(RESPONSE_SIZE_HEADER, "").strip())
        except ValueError:
            return 0
        if size <= 0:
            return 0
        if self.max_body_size > 0:
            size = min(size, self.max_body_size)
        return size

    def custom_headers(self, request: InboundRequest, directives: ResolvedDirectives,
                       defaults: Mapping[str, str], headers: httpx.Headers) -> None:
        # Process defaults first so a request header for the same name wins
        for key, value in defaults.items():
            if key.startswith(HEADER_DEFAULT_PREFIX):
                name = key[len(HEADER_DEFAULT_PREFIX):].replace("_", "-")
                if name:
                    headers[name] = value

        for name, value in request.headers.multi_items():
            if name.lower().startswith(SET_HEADER_PREFIX):
                target = name[len(SET_HEADER_PREFIX):]
                if target:
                    headers[_title(target)] = value

        requested = request.headers.get(ECHO_HEADERS_HEADER, "")
        for name in requested.split(","):
            name = name.strip()
            if name and request.headers.get(name):
                headers[f"X-Echoed-{name}"] = request.headers[name]

        if directives.server_info.strip().lower() == "true":
            headers["X-Echo-Server"] = self.hostname
            headers["X-Echo-Version"] = VERSION
            headers["X-Echo-Uptime"] = f"{time.monotonic() - self.started:.3f}s"
