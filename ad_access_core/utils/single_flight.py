"""
Collapse concurrent calls for the same key into one execution.

The first caller for a key (the leader) runs the function; callers that
arrive while it is running wait on the leader's future and receive the same
result or exception. The registry is process-local.
"""

import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional, Tuple

from .logger import get_logger


class SingleFlight:
    """Per-key in-flight call registry."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        self.logger = get_logger()

    def do(
        self, key: str, fn: Callable[[], Any], timeout: Optional[float] = None
    ) -> Tuple[Any, bool]:
        """
        Run ``fn`` once per key across concurrent callers.

        Args:
            key: Identity of the work, e.g. a credential id
            fn: Zero-argument callable performing the work
            timeout: Seconds a follower waits for the leader before giving up

        Returns:
            Tuple of (result, shared) where ``shared`` is True for followers

        Raises:
            Whatever ``fn`` raised, for the leader and every follower;
            concurrent.futures.TimeoutError if a follower's wait expires
        """
        with self._lock:
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            self.logger.debug("Joining in-flight call", extra={"key": key})
            return future.result(timeout=timeout), True

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight
