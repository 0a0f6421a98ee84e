"""
Replay of recorded requests, either back into this server or to a target URL.
"""

import logging
from typing import Any, Callable, Optional

import httpx

from .history import HistoryStore, RequestRecord
from .models import EchoResponse, InboundRequest

logger = logging.getLogger(__name__)

REPLAY_TIMEOUT = 30.0

# Framing headers describe the upstream connection, not the payload we forward
_DROPPED_HEADERS = {"content-length", "transfer-encoding", "connection", "content-encoding", "keep-alive"}


class ReplayRequestError(ValueError):
    """The replay request body was malformed."""


class ReplayNotFound(LookupError):
    pass


class ReplayFailed(RuntimeError):
    pass


def parse_replay_request(payload: Any):
    """Validate {"id": str, "target": optional str}; returns (id, target)."""
    if not isinstance(payload, dict):
        raise ReplayRequestError("Invalid request body")
    record_id = payload.get("id", "")
    target = payload.get("target") or None
    if not isinstance(record_id, str) or (target is not None and not isinstance(target, str)):
        raise ReplayRequestError("Invalid request body")
    return record_id, target


class ReplayExecutor:
    def __init__(self, history: HistoryStore, local: Callable[[InboundRequest], EchoResponse],
                 transport: Optional[httpx.BaseTransport] = None):
        self.history = history
        self.local = local
        self.transport = transport

    def replay(self, record_id: str, target: Optional[str] = None,
               host: str = "", remote_addr: str = "") -> EchoResponse:
        record = self.history.find(record_id)
        if record is None:
            raise ReplayNotFound("Request ID not found")
        if target:
            return self.to_target(record, target)
        return self.to_self(record, host, remote_addr)

    def to_self(self, record: RequestRecord, host: str = "", remote_addr: str = "") -> EchoResponse:
        request = InboundRequest(
            method=record.method,
            uri=record.url,
            headers=httpx.Headers(list(record.headers)),
            body=record.body,
            host=host,
            remote_addr=remote_addr,
        )
        result = self.local(request)
        response = EchoResponse(status_code=result.status_code, body=result.body)
        if result.content_type:
            response.headers["Content-Type"] = result.content_type
        return response

    def to_target(self, record: RequestRecord, target: str) -> EchoResponse:
        headers = [(k, v) for k, v in record.headers if k.lower() not in ("host", "content-length")]
        try:
            with httpx.Client(timeout=REPLAY_TIMEOUT, transport=self.transport) as client:
                upstream = client.request(record.method, target, headers=headers, content=record.body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Replay of %s to %s failed: %s", record.id, target, e)
            raise ReplayFailed(f"Replay failed: {e}") from e

        return EchoResponse(
            status_code=upstream.status_code,
            body=upstream.content,
            headers=httpx.Headers([
                (name, value) for name, value in upstream.headers.multi_items()
                if name not in _DROPPED_HEADERS
            ]),
        )
