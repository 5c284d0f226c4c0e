"""
Rate gate for outbound object store calls.

One gate is shared by every remote call a store issues (export, import and
listing), so the aggregate call rate of one sync side stays under a fixed
ceiling. The gate is a single-slot hand-off rather than a token bucket:
callers line up behind a ticker thread that admits at most one request per
tick, so there is no bursting after idle periods.
"""

import logging
import queue
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class _Permit:
    """A pending request for one admission through the gate."""

    __slots__ = ("granted", "withdrawn")

    def __init__(self):
        self.granted = threading.Event()
        self.withdrawn = False


class RateGate:
    """
    Single-slot rate gate for controlling remote call frequency.

    At most one permit request is buffered at a time. A background ticker
    fires every ``1 / rate_per_second`` seconds and takes at most one
    request from the buffer per tick, admitting its caller. Issuing M calls
    through a gate configured for R calls per second therefore takes at
    least ``(M - 1) / R`` seconds.

    A rate of zero or less (or None) disables the gate: acquire() never
    blocks and no ticker thread is started.

    Attributes:
        rate_per_second: Configured ceiling of admitted calls per second.
        admitted: Number of calls admitted so far.

    Example:
        >>> gate = RateGate(rate_per_second=5)
        >>> gate.acquire()  # blocks until the ticker admits this call
        True
        >>> gate.close()
    """

    # Granularity at which blocked callers re-check cancellation and close()
    POLL_SECONDS = 0.05

    def __init__(self, rate_per_second: Optional[float] = None):
        """
        Initialize rate gate.

        Args:
            rate_per_second: Maximum admitted calls per second, <= 0 disables.
        """
        self.rate_per_second = rate_per_second or 0
        self.admitted = 0
        self._slot: Optional[queue.Queue] = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._ticker: Optional[threading.Thread] = None

        if self.rate_per_second > 0:
            self.interval = 1.0 / self.rate_per_second
            self._slot = queue.Queue(maxsize=1)
            self._ticker = threading.Thread(
                target=self._drain,
                name="logbridge-rate-gate",
                daemon=True,
            )
            self._ticker.start()
            logger.debug(f"Rate gate started at {self.rate_per_second}/s")
        else:
            self.interval = 0.0

    @property
    def enabled(self) -> bool:
        """Whether the gate limits anything."""
        return self._slot is not None and not self._stopped.is_set()

    def acquire(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Block until the ticker admits this call.

        Args:
            cancel_event: Optional event; when set while waiting, the request
                is withdrawn.

        Returns:
            True once admitted (immediately when disabled), False if the
            request was withdrawn through cancel_event.
        """
        if not self.enabled:
            return True

        permit = _Permit()

        # Wait for the slot to be free of any unconsumed request
        while True:
            if self._cancelled(cancel_event):
                return False
            if self._stopped.is_set():
                return True
            try:
                self._slot.put(permit, timeout=self.POLL_SECONDS)
                break
            except queue.Full:
                continue

        while not permit.granted.wait(self.POLL_SECONDS):
            if self._cancelled(cancel_event):
                with self._lock:
                    if permit.granted.is_set():
                        return True
                    permit.withdrawn = True
                return False
            if self._stopped.is_set():
                return True

        return True

    def close(self) -> None:
        """Stop the ticker thread. Blocked callers are released."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._ticker is not None:
            self._ticker.join(timeout=self.interval + 1.0)
            logger.debug("Rate gate stopped")

    def _drain(self) -> None:
        """Admit at most one buffered request per tick."""
        while not self._stopped.wait(self.interval):
            try:
                permit = self._slot.get_nowait()
            except queue.Empty:
                continue

            # A withdrawn request still costs its tick
            with self._lock:
                if permit.withdrawn:
                    continue
                self.admitted += 1
                permit.granted.set()

    @staticmethod
    def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()
