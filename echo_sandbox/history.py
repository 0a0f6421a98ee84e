import base64
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

from .models import InboundRequest


@dataclass(frozen=True)
class RequestRecord:
    id: str
    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: bytes = b""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_request(cls, request: InboundRequest) -> "RequestRecord":
        return cls(
            id=request.request_id,
            method=request.method,
            url=request.uri,
            headers=tuple(request.headers.multi_items()),
            body=request.body,
        )

    def to_dict(self) -> Dict[str, Any]:
        headers: Dict[str, List[str]] = {}
        for name, value in self.headers:
            headers.setdefault(name, []).append(value)
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "url": self.url,
            "headers": headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        }


class HistoryStore:
    """FIFO buffer of recent requests; the oldest record goes first when full."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._lock = threading.Lock()
        self._records: Deque[RequestRecord] = deque()

    @property
    def enabled(self) -> bool:
        return self.capacity > 0

    def record(self, request: InboundRequest) -> Optional[RequestRecord]:
        if not self.enabled:
            return None
        record = RequestRecord.from_request(request)
        with self._lock:
            self._records.append(record)
            if len(self._records) > self.capacity:
                self._records.popleft()
        return record

    def snapshot(self) -> List[RequestRecord]:
        with self._lock:
            return list(self._records)

    def find(self, record_id: str) -> Optional[RequestRecord]:
        with self._lock:
            for record in self._records:
                if record.id == record_id:
                    return record
        return None
