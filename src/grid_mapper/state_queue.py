from typing import Generic, TypeVar, Optional
import threading


T = TypeVar("T")


class SingleSlotQueue(Generic[T]):
    """Thread-safe, size=1, latest-wins channel between the search worker and one reader.

    Intermediate progress snapshots may be dropped, but once the producer
    closes the queue the reader still receives the final item before None.
    """
    def __init__(self) -> None:
        self._cv = threading.Condition()
        self._has_value = False
        self._value: Optional[T] = None
        self._closed = False
        self.published = 0

    def publish(self, item: T) -> bool:
        """Replace the pending item. Returns False once the queue is closed."""
        with self._cv:
            if self._closed:
                return False
            self._value = item
            self._has_value = True
            self.published += 1
            self._cv.notify()
            return True

    def close(self) -> None:
        with self._cv:
            self._closed = True
            self._cv.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block for the newest item. Returns None once closed and drained."""
        with self._cv:
            ok = self._cv.wait_for(lambda: self._has_value or self._closed, timeout)
            if not ok:
                raise TimeoutError("queue get() timed out")
            if not self._has_value:
                return None
            item = self._value
            self._value = None
            self._has_value = False
            return item
