"""
Chaos and error injection.

Checked after the delay and before scenarios: forced status, then forced
error keyword, then the chaos rate. Returning None lets the pipeline continue.
"""

import logging
import time
from typing import Callable, Optional

import httpx

from .directives import ResolvedDirectives
from .metrics import EchoMetrics
from .models import EchoResponse, InboundRequest
from .render import echo_body
from .rng import SharedRandom

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 65
RANDOM_ERROR_STATUSES = (500, 502, 503, 504, 429)
CHAOS_STATUSES = (500, 502, 503, 504, 408, 429)

# keyword -> (status, metric label, body)
FORCED_ERRORS = {
    "500": (500, "internal", "Simulated internal server error"),
    "internal": (500, "internal", "Simulated internal server error"),
    "502": (502, "bad_gateway", "Simulated bad gateway"),
    "bad-gateway": (502, "bad_gateway", "Simulated bad gateway"),
    "503": (503, "unavailable", "Simulated service unavailable"),
    "unavailable": (503, "unavailable", "Simulated service unavailable"),
    "504": (504, "gateway_timeout", "Simulated gateway timeout"),
    "gateway-timeout": (504, "gateway_timeout", "Simulated gateway timeout"),
    "429": (429, "rate_limit", "Simulated rate limit exceeded"),
    "rate-limit": (429, "rate_limit", "Simulated rate limit exceeded"),
}


def _plain(status: int, text: str) -> EchoResponse:
    return EchoResponse(
        status_code=status,
        body=text.encode(),
        headers=httpx.Headers({"Content-Type": "text/plain"}),
    )


class ChaosInjector:
    def __init__(self, rng: SharedRandom, metrics: EchoMetrics,
                 sleep: Callable[[float], None] = time.sleep):
        self.rng = rng
        self.metrics = metrics
        self.sleep = sleep

    def inject(self, request: InboundRequest, directives: ResolvedDirectives) -> Optional[EchoResponse]:
        response = self.forced_status(request, directives.status)
        if response is None:
            response = self.forced_error(directives.error)
        if response is None:
            response = self.chaos(request, directives.chaos)
        return response

    def forced_status(self, request: InboundRequest, value: str) -> Optional[EchoResponse]:
        if not value:
            return None
        try:
            status = int(value.strip())
        except ValueError:
            return None
        if not 100 <= status <= 599:
            return None
        body, content_type = echo_body(request)
        response = EchoResponse(status_code=status, body=body)
        response.headers["X-Echo-Status-Forced"] = "true"
        response.headers["Content-Type"] = content_type
        self.metrics.injected("status")
        return response

    def forced_error(self, value: str) -> Optional[EchoResponse]:
        keyword = value.strip().lower()
        if not keyword:
            return None
        if keyword == "timeout":
            logger.info("Simulating unresponsive backend for %ss", TIMEOUT_SECONDS)
            self.sleep(TIMEOUT_SECONDS)
            self.metrics.injected("timeout")
            # Nothing was written: the transport answers with an empty 200
            return EchoResponse()
        if keyword == "random":
            status = self.rng.choice(RANDOM_ERROR_STATUSES)
            self.metrics.injected("random")
            return _plain(status, f"Random simulated error: {status}")
        if keyword not in FORCED_ERRORS:
            return None
        status, kind, text = FORCED_ERRORS[keyword]
        response = _plain(status, text)
        if status == 429:
            response.headers["Retry-After"] = "60"
        self.metrics.injected(kind)
        return response

    def chaos(self, request: InboundRequest, value: str) -> Optional[EchoResponse]:
        if not value:
            return None
        try:
            rate = int(value.strip())
        except ValueError:
            return None
        if not 0 < rate <= 100:
            return None
        if self.rng.randrange(100) >= rate:
            return None
        status = self.rng.choice(CHAOS_STATUSES)
        logger.info("Chaos: injecting %d error for %s (%d%% rate)", status, request.remote_addr, rate)
        self.metrics.injected("chaos")
        return _plain(status, f"Chaos error injection: {status}")
