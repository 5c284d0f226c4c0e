"""
Best-effort "a merge happened" signal.

The importer pushes into a capacity-1 queue without ever blocking; a push
that finds the slot occupied is dropped. Observers therefore learn that at
least one merge occurred since they last drained the signal, never how many
or which keys. They re-query the local log for details.
"""

import queue
from typing import Optional


class ImportNotifier:
    """Single-slot, non-blocking send-or-drop notification channel."""

    def __init__(self):
        self._slot: queue.Queue = queue.Queue(maxsize=1)
        self.dropped = 0

    def notify(self) -> bool:
        """
        Push a notification without blocking.

        Returns:
            True if the notification was queued, False if one was already
            pending and this one was coalesced into it.
        """
        try:
            self._slot.put_nowait(None)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def signal(self) -> "ImportSignal":
        """Return the read-only view handed to observers."""
        return ImportSignal(self._slot)


class ImportSignal:
    """
    Read-only observer view of an ImportNotifier.

    Example:
        >>> signal = importer.on_import()
        >>> if signal.wait(timeout=30):
        ...     refresh_views(log)
    """

    def __init__(self, slot: queue.Queue):
        self._slot = slot

    @property
    def pending(self) -> bool:
        """Whether a notification is waiting to be drained."""
        return not self._slot.empty()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a notification arrives and drain it.

        Args:
            timeout: Seconds to wait, None waits forever.

        Returns:
            True if a notification was drained, False on timeout.
        """
        try:
            self._slot.get(timeout=timeout)
            return True
        except queue.Empty:
            return False

    def poll(self) -> bool:
        """Drain a pending notification without blocking."""
        try:
            self._slot.get_nowait()
            return True
        except queue.Empty:
            return False
