"""
Delay simulation.

Five directive families are checked in a fixed order: fixed delay, jitter,
random range, exponential backoff, latency injection. The first family whose
value parses wins; a value that does not parse falls through to the next
family and is never reported to the client.

The computed delay is applied with a blocking sleep. Client disconnects are
not observed while sleeping, so a delayed request behaves like a backend that
stopped answering.
"""

import logging
import time
from typing import Callable, Optional, Tuple

from .directives import ResolvedDirectives
from .rng import SharedRandom

logger = logging.getLogger(__name__)

MAX_DELAY_MS = 300_000


def clamp(ms: int) -> int:
    return max(0, min(ms, MAX_DELAY_MS))


def parse_ms(value: str) -> Optional[int]:
    """Parse `250` or `250ms`."""
    value = value.strip()
    if value.endswith("ms"):
        value = value[:-2].strip()
    try:
        return int(value)
    except ValueError:
        return None


def parse_pair(value: str) -> Optional[Tuple[int, int]]:
    """Parse `a,b` into two integers."""
    parts = value.split(",")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0].strip()), int(parts[1].strip())
    except ValueError:
        return None


def fixed_delay(value: str) -> Optional[int]:
    ms = parse_ms(value)
    if ms is None or ms < 0:
        return None
    return clamp(ms)


def jitter_delay(value: str, rng: SharedRandom) -> Optional[int]:
    pair = parse_pair(value)
    if pair is None:
        return None
    base, variance = pair
    if base < 0 or variance < 0:
        return None
    return clamp(base + rng.randint(-variance, variance))


def random_range_delay(value: str, rng: SharedRandom) -> Optional[int]:
    pair = parse_pair(value)
    if pair is None:
        return None
    low, high = pair
    if low < 0 or high < low:
        return None
    high = min(high, MAX_DELAY_MS)
    low = min(low, high)
    return clamp(rng.randint(low, high))


def exponential_delay(value: str, rng: SharedRandom) -> Optional[int]:
    pair = parse_pair(value)
    if pair is None:
        return None
    base, attempt = pair
    if base <= 0 or attempt < 1:
        return None
    # 2**19 already exceeds the ceiling for any positive base
    if attempt > 20:
        raw = MAX_DELAY_MS
    else:
        raw = min(base * 2 ** (attempt - 1), MAX_DELAY_MS)
    spread = int(raw * 0.25)
    return clamp(raw + rng.randint(-spread, spread))


def latency_delay(value: str, rng: SharedRandom) -> Optional[int]:
    """Parse `Nms`, `N` or `N-Mms` and pick the delay."""
    if "-" not in value:
        return fixed_delay(value)
    parts = value.split("-")
    if len(parts) != 2:
        return None
    low, high = parse_ms(parts[0]), parse_ms(parts[1])
    if low is None or high is None or low < 0 or high < low:
        return None
    high = min(high, MAX_DELAY_MS)
    low = min(low, high)
    return clamp(rng.randint(low, high))


def compute_delay(directives: ResolvedDirectives, rng: SharedRandom) -> Optional[Tuple[str, int]]:
    """Return (family, milliseconds) for the winning delay family, or None."""
    if directives.delay:
        ms = fixed_delay(directives.delay)
        if ms is not None:
            return "fixed", ms
    if directives.jitter:
        ms = jitter_delay(directives.jitter, rng)
        if ms is not None:
            return "jitter", ms
    if directives.random_delay:
        ms = random_range_delay(directives.random_delay, rng)
        if ms is not None:
            return "random", ms
    if directives.exponential:
        ms = exponential_delay(directives.exponential, rng)
        if ms is not None:
            return "exponential", ms
    if directives.latency:
        ms = latency_delay(directives.latency, rng)
        if ms is not None:
            return "latency", ms
    return None


class DelaySimulator:
    def __init__(self, rng: SharedRandom, sleep: Callable[[float], None] = time.sleep):
        self.rng = rng
        self.sleep = sleep

    def apply(self, directives: ResolvedDirectives) -> Optional[int]:
        """Block for the resolved delay. Returns the applied milliseconds."""
        outcome = compute_delay(directives, self.rng)
        if outcome is None:
            return None
        family, ms = outcome
        logger.info("%s delay: %dms", family.capitalize(), ms)
        self.sleep(ms / 1000.0)
        return ms

    def sleep_ms(self, ms: int) -> None:
        self.sleep(clamp(ms) / 1000.0)
