import random
import threading
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class SharedRandom:
    """A random.Random shared by every request worker, guarded by a lock."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng if rng is not None else random.Random()
        self._lock = threading.Lock()

    def randint(self, a: int, b: int) -> int:
        with self._lock:
            return self._rng.randint(a, b)

    def randrange(self, stop: int) -> int:
        with self._lock:
            return self._rng.randrange(stop)

    def choice(self, seq: Sequence[T]) -> T:
        with self._lock:
            return self._rng.choice(seq)

    def randbytes(self, n: int) -> bytes:
        with self._lock:
            return self._rng.randbytes(n)
