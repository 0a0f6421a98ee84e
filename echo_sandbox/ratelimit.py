import threading
import time


class TokenBucket:
    """Token bucket shared by every request: `rate` tokens/s, at most `burst` stored."""

    def __init__(self, rate: float, burst: int, clock=time.monotonic):
        self.rate = rate
        self.burst = burst
        self.tokens = float(burst)
        self.clock = clock
        self.last = clock()
        self.lock = threading.Lock()

    def allow(self, n: int = 1) -> bool:
        with self.lock:
            now = self.clock()
            self.tokens = min(self.burst, self.tokens + (now - self.last) * self.rate)
            self.last = now
            if self.tokens >= n:
                self.tokens -= n
                return True
            return False
