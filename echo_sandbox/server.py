"""
EchoServer owns all mutable state of one simulator instance and runs the
request-control pipeline:

    record -> delay -> chaos/error injection -> scenario -> render

Recording happens first so that every request, including ones that end up
chaos-injected, shows up in history.
"""

import logging
import random
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

import httpx

from .chaos import ChaosInjector
from .config import DefaultsStore, ServerConfig, defaults_from_env
from .delays import DelaySimulator
from .directives import ResolvedDirectives
from .history import HistoryStore
from .metrics import EchoMetrics
from .models import EchoResponse, InboundRequest
from .ratelimit import TokenBucket
from .render import ResponseRenderer
from .replay import ReplayExecutor
from .rng import SharedRandom
from .scenarios import ScenarioEngine

logger = logging.getLogger(__name__)


class RequestCounter:
    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class EchoServer:
    def __init__(
        self,
        config: ServerConfig,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        defaults: Optional[Mapping[str, str]] = None,
        replay_transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self.started_at = datetime.now(timezone.utc)
        self.defaults = DefaultsStore(defaults_from_env() if defaults is None else defaults)
        self.rng = SharedRandom(rng)
        self.metrics = EchoMetrics()
        self.counter = RequestCounter()
        self.history = HistoryStore(config.history_size)
        self.delays = DelaySimulator(self.rng, sleep)
        self.chaos = ChaosInjector(self.rng, self.metrics, sleep)
        self.scenarios = ScenarioEngine(self.delays)
        self.renderer = ResponseRenderer(self.rng, config.hostname, config.max_body_size)
        self.replayer = ReplayExecutor(self.history, self.handle, replay_transport)
        self.rate_limiter = None
        if config.rate_limit_rps > 0 and config.rate_limit_burst > 0:
            self.rate_limiter = TokenBucket(config.rate_limit_rps, config.rate_limit_burst)

    def handle(self, request: InboundRequest) -> EchoResponse:
        """Run one request through the pipeline. Blocks for any simulated delay."""
        count = self.counter.increment()
        self.history.record(request)

        defaults = self.defaults.snapshot()
        directives = ResolvedDirectives.resolve(request.headers, defaults)

        self.delays.apply(directives)

        response = self.chaos.inject(request, directives)
        if response is not None:
            return response

        response = self.scenarios.respond(request)
        if response is not None:
            return response

        return self.renderer.render(request, directives, defaults, count)
