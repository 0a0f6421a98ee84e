"""
Scenario engine: per-path cyclic sequences of canned responses.

Each installed path owns a cursor into its response list. A visit reads the
response under the cursor and advances it modulo the list length, so the
sequence loops forever. Installing a definition for a path always restarts
it from the first response.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import yaml

from .delays import DelaySimulator, latency_delay
from .models import EchoResponse, InboundRequest, request_dump

logger = logging.getLogger(__name__)


class ScenarioError(ValueError):
    """Raised for scenario payloads that do not describe valid definitions."""


@dataclass(frozen=True)
class ScenarioResponse:
    status: int = 200
    delay: str = ""
    body: str = ""


@dataclass(frozen=True)
class ScenarioDefinition:
    path: str
    responses: Tuple[ScenarioResponse, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "responses": [asdict(r) for r in self.responses]}


def _parse_response(raw: Any) -> ScenarioResponse:
    if not isinstance(raw, dict):
        raise ScenarioError("each response must be an object")
    status = raw.get("status", 200)
    if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
        raise ScenarioError(f"invalid status: {status!r}")
    delay = raw.get("delay") or ""
    body = raw.get("body")
    if body is None:
        body = ""
    if not isinstance(delay, (str, int)) or not isinstance(body, str):
        raise ScenarioError("delay and body must be strings")
    return ScenarioResponse(status=status, delay=str(delay), body=body)


def parse_definitions(payload: Any) -> List[ScenarioDefinition]:
    """Validate a decoded JSON/YAML payload: a list of {path, responses}."""
    if not isinstance(payload, list):
        raise ScenarioError("scenario payload must be a list")
    definitions = []
    for item in payload:
        if not isinstance(item, dict):
            raise ScenarioError("each scenario must be an object")
        path = item.get("path")
        if not isinstance(path, str) or not path:
            raise ScenarioError("scenario path must be a non-empty string")
        responses = item.get("responses")
        if not isinstance(responses, list) or not responses:
            raise ScenarioError(f"scenario {path} needs at least one response")
        definitions.append(ScenarioDefinition(path, tuple(_parse_response(r) for r in responses)))
    return definitions


def load_definitions(text: str) -> List[ScenarioDefinition]:
    """Parse JSON or YAML text (JSON is a subset of YAML)."""
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid scenario data: {e}") from e
    return parse_definitions(payload)


class ScenarioEngine:
    def __init__(self, delays: DelaySimulator):
        self.delays = delays
        self._lock = threading.Lock()
        self._definitions: Dict[str, ScenarioDefinition] = {}
        self._cursors: Dict[str, int] = {}

    def install(self, definitions: List[ScenarioDefinition]) -> None:
        with self._lock:
            for definition in definitions:
                self._definitions[definition.path] = definition
                self._cursors[definition.path] = 0

    def load_file(self, path: str) -> int:
        """Install definitions from a YAML file. Missing files are skipped."""
        source = Path(path)
        if not path or not source.exists():
            return 0
        try:
            definitions = load_definitions(source.read_text())
        except (OSError, ScenarioError) as e:
            logger.warning("Failed to parse scenario file %s: %s", path, e)
            return 0
        self.install(definitions)
        logger.info("Loaded %d scenario(s) from %s", len(definitions), path)
        return len(definitions)

    def definitions(self) -> List[ScenarioDefinition]:
        with self._lock:
            return list(self._definitions.values())

    def advance(self, path: str) -> Optional[ScenarioResponse]:
        """Return the response under the cursor for path and move the cursor on."""
        with self._lock:
            definition = self._definitions.get(path)
            if definition is None:
                return None
            index = self._cursors.get(path, 0) % len(definition.responses)
            self._cursors[path] = (index + 1) % len(definition.responses)
            return definition.responses[index]

    def respond(self, request: InboundRequest) -> Optional[EchoResponse]:
        step = self.advance(request.path)
        if step is None:
            return None

        if step.delay:
            ms = latency_delay(step.delay, self.delays.rng)
            if ms is not None:
                logger.info("Scenario delay: %dms", ms)
                self.delays.sleep_ms(ms)

        # Scenario responses are always labelled JSON, even the request dump
        body = step.body.encode() if step.body else request_dump(request).encode()
        return EchoResponse(
            status_code=step.status,
            body=body,
            headers=httpx.Headers({"X-Echo-Scenario": "true", "Content-Type": "application/json"}),
        )
