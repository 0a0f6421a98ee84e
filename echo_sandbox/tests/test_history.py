import base64
from concurrent.futures import ThreadPoolExecutor

import httpx

from echo_sandbox.history import HistoryStore, RequestRecord
from echo_sandbox.models import InboundRequest


def request(rid, body=b""):
    return InboundRequest("POST", f"/items?n={rid}", httpx.Headers({"X-Request-ID": rid}), body)


def test_capacity_keeps_only_latest_records():
    store = HistoryStore(capacity=3)
    for n in range(7):
        store.record(request(str(n)))
    assert [r.id for r in store.snapshot()] == ["4", "5", "6"]


def test_zero_capacity_disables_recording():
    store = HistoryStore(capacity=0)
    assert store.record(request("a")) is None
    assert store.snapshot() == []


def test_missing_request_id_records_empty_id():
    store = HistoryStore(capacity=2)
    store.record(InboundRequest("GET", "/"))
    assert store.snapshot()[0].id == ""


def test_find_by_exact_id():
    store = HistoryStore(capacity=5)
    store.record(request("abc", b"one"))
    store.record(request("abcd", b"two"))
    assert store.find("abcd").body == b"two"
    assert store.find("ab") is None


def test_snapshot_is_detached_from_store():
    store = HistoryStore(capacity=2)
    store.record(request("a"))
    snapshot = store.snapshot()
    store.record(request("b"))
    store.record(request("c"))
    assert [r.id for r in snapshot] == ["a"]


def test_concurrent_writers_never_exceed_capacity():
    store = HistoryStore(capacity=50)
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda n: store.record(request(str(n))), range(500)))
    assert len(store.snapshot()) == 50


def test_record_serializes_headers_and_body():
    headers = httpx.Headers([("X-Request-ID", "r1"), ("Accept", "a"), ("Accept", "b")])
    record = RequestRecord.from_request(InboundRequest("PUT", "/x?y=1", headers, b"\x00payload"))
    data = record.to_dict()
    assert data["id"] == "r1"
    assert data["method"] == "PUT"
    assert data["url"] == "/x?y=1"
    assert data["headers"]["accept"] == ["a", "b"]
    assert base64.b64decode(data["body"]) == b"\x00payload"
    assert data["timestamp"].endswith("+00:00")
