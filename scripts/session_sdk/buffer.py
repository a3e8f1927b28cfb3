"""
Event buffer between the privacy gate and the upload scheduler.

Holds captured events in capture order since the last drain. Producers may
append from their own threads while the scheduler drains, so append and
drain_snapshot share one lock and a drain is a single snapshot-and-clear.
"""

import sys
import threading
from collections import deque
from typing import Callable, Optional, Tuple, TypeVar

from .schema import Event


T = TypeVar("T")


class EventBuffer:
    """
    Ordered, append-only event queue with an optional cap.

    When max_size is set and the buffer is full:
    - drop_oldest: the oldest buffered event is discarded
    - drop_newest: the incoming event is discarded
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        overflow_policy: str = "drop_oldest"
    ):
        """
        Initialize buffer.

        Args:
            max_size: Maximum number of held events (None = unbounded)
            overflow_policy: "drop_oldest" or "drop_newest"
        """
        self.max_size = max_size
        self.overflow_policy = overflow_policy
        self.dropped = 0
        self._events = deque()
        self._lock = threading.Lock()

    def append(self, event: Event) -> bool:
        """
        Add an event at the end of the buffer.

        Args:
            event: Event that passed the privacy gate

        Returns:
            False if the event was discarded by the overflow policy
        """
        with self._lock:
            if self.max_size is not None and len(self._events) >= self.max_size:
                self.dropped += 1
                if self.overflow_policy == "drop_newest":
                    self._warn_overflow()
                    return False
                self._events.popleft()
                self._warn_overflow()
            self._events.append(event)
            return True

    def drain_snapshot(self) -> Tuple[Event, ...]:
        """
        Atomically take every held event and clear the buffer.

        Returns:
            Immutable tuple of events in capture order
        """
        with self._lock:
            snapshot = tuple(self._events)
            self._events.clear()
        return snapshot

    def drain_with(self, build: Callable[[Tuple[Event, ...]], T]) -> Optional[T]:
        """
        Build a value from a snapshot, clearing the buffer only on success.

        Appends wait while build runs, so an event is either in the
        snapshot or left in the buffer. If build raises, nothing is removed.

        Args:
            build: Function turning the snapshot into e.g. a Batch

        Returns:
            Result of build, or None if the buffer was empty
        """
        with self._lock:
            if not self._events:
                return None
            result = build(tuple(self._events))
            self._events.clear()
        return result

    def clear(self) -> int:
        """
        Discard all held events without returning them.

        Returns:
            Number of events discarded
        """
        with self._lock:
            count = len(self._events)
            self._events.clear()
        return count

    def is_empty(self) -> bool:
        with self._lock:
            return not self._events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def _warn_overflow(self):
        # Report the first drop and then every 1000th
        if self.dropped == 1 or self.dropped % 1000 == 0:
            print(f"Warning: Event buffer full ({self.max_size}), "
                  f"{self.dropped} event(s) dropped ({self.overflow_policy})",
                  file=sys.stderr)
