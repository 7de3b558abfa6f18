import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar('K', bound=Hashable)


def current_time_millis() -> int:
    return time.time_ns() // 1_000_000


class DelayLimiter(Generic[K]):
    """
    Suppresses repeated work for the same key until a TTL passes.

    The first should_invoke for a key returns True and remembers the key for
    ttl_millis. Later calls for that key return False until the entry expires,
    is evicted because more than cardinality keys are remembered, or is
    removed with invalidate. Safe to share between threads and event loops.
    """

    def __init__(
        self,
        ttl_millis: int,
        cardinality: int,
        clock: Callable[[], int] = current_time_millis,
    ):
        if ttl_millis <= 0:
            raise ValueError(f"ttl_millis must be positive: {ttl_millis}")
        if cardinality <= 0:
            raise ValueError(f"cardinality must be positive: {cardinality}")
        self.ttl_millis = ttl_millis
        self.cardinality = cardinality
        self._clock = clock
        self._lock = threading.Lock()
        # key -> expiration, oldest first as every entry shares the same ttl
        self._expirations: OrderedDict[K, int] = OrderedDict()

    def should_invoke(self, key: K) -> bool:
        with self._lock:
            now = self._clock()
            self._expire(now)
            if key in self._expirations:
                return False
            self._expirations[key] = now + self.ttl_millis
            while len(self._expirations) > self.cardinality:
                self._expirations.popitem(last=False)
            return True

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._expirations.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._expirations.clear()

    def _expire(self, now: int) -> None:
        while self._expirations:
            key, expiration = next(iter(self._expirations.items()))
            if expiration > now:
                break
            del self._expirations[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._expirations)
