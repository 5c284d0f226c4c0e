"""
Object store interface for segment synchronization.

Provides:
- Abstract capability set (export, import, get-next) any object store can
  implement without touching exporter or importer logic
- Shared rate gate in front of every remote call
- Cancellation forwarding so throttled calls do not hold up shutdown
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional

from ..exceptions import OperationCancelled
from ..rate_limiter import RateGate

logger = logging.getLogger(__name__)


class SegmentStore(ABC):
    """Abstract base class for segment object stores."""

    # Streaming chunk size for downloads
    DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5 MB

    def __init__(self, rate_gate: Optional[RateGate] = None):
        """
        Args:
            rate_gate: Gate shared by every remote call of this store
                (unlimited if None)
        """
        self.rate_gate = rate_gate or RateGate()
        # Set by whoever hands the store a gate it should release on close()
        self.owns_gate = rate_gate is None

    def _throttle(self, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Wait for the rate gate before a remote call.

        Raises:
            OperationCancelled: If cancel_event was set while waiting
        """
        if not self.rate_gate.acquire(cancel_event):
            raise OperationCancelled("Remote call withdrawn by cancellation")

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the object store."""
        pass

    def disconnect(self) -> None:
        """
        Close the connection. The rate gate keeps running, so a later
        connect() is throttled as before and stores sharing the gate are
        unaffected.
        """
        pass

    def close(self) -> None:
        """Disconnect, and stop the rate gate if this store owns it."""
        self.disconnect()
        if self.owns_gate:
            self.rate_gate.close()

    @abstractmethod
    def export(
        self,
        key: str,
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Write the whole readable source under key.

        Args:
            key: Destination key
            source: Readable binary stream, read from its current position
            cancel_event: Optional cancellation token

        Returns:
            The key written

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def import_segment(
        self,
        key: str,
        dest: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Stream the object stored under key into dest.

        Args:
            key: Source key
            dest: Writable binary stream
            cancel_event: Optional cancellation token

        Returns:
            Number of bytes written

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def get_next_key(
        self,
        prefix: str,
        last_key: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Find the first key under prefix that sorts strictly after last_key.

        Args:
            prefix: Key prefix scoping one dataset
            last_key: Cursor, "" to start from the beginning of the prefix
            cancel_event: Optional cancellation token

        Returns:
            The next key

        Raises:
            KeyNotFoundError: If no newer key exists
            StorageError: If the listing fails
        """
        pass

    @abstractmethod
    def delete_all(
        self,
        prefix: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Delete every key under prefix. Returns the number of keys deleted."""
        pass

    def import_next(
        self,
        prefix: str,
        last_key: str,
        dest: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Download the first object after last_key into dest.

        Returns:
            The key that was downloaded

        Raises:
            KeyNotFoundError: If no newer key exists
        """
        key = self.get_next_key(prefix, last_key, cancel_event=cancel_event)
        self.import_segment(key, dest, cancel_event=cancel_event)
        return key

    def __enter__(self) -> "SegmentStore":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()
