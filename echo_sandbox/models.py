from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx


@dataclass(frozen=True)
class InboundRequest:
    """A request as the pipeline sees it, with the body already buffered."""

    method: str
    uri: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""
    protocol: str = "HTTP/1.1"
    host: str = ""
    remote_addr: str = ""

    @property
    def path(self) -> str:
        return self.uri.split("?", 1)[0] or "/"

    @property
    def request_id(self) -> str:
        return self.headers.get("X-Request-ID", "")


@dataclass
class EchoResponse:
    status_code: int = 200
    body: bytes = b""
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")


def client_ip(request: InboundRequest) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip
    return request.remote_addr


def request_dump(request: InboundRequest) -> str:
    """Plain-text description of a request: request line, sorted headers, client."""
    lines = [f"{request.method} {request.uri or '/'} {request.protocol}"]
    lines.append(f"Host: {request.host}")
    grouped = {}
    for name, value in request.headers.multi_items():
        grouped.setdefault(_canonical(name), []).append(value)
    for name in sorted(grouped):
        if name == "Host":
            continue
        for value in grouped[name]:
            lines.append(f"{name}: {value}")
    lines.append("")
    lines.append(f"Client-IP: {client_ip(request)}")
    lines.append(f"Timestamp: {datetime.now(timezone.utc).isoformat(timespec='seconds')}")
    return "\n".join(lines) + "\n"


def _canonical(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))
