"""
In-process segment store.

Keeps objects in a dictionary with a sorted key index, giving the same
lexical listing semantics as S3 and GCS. Useful for local runs of an
exporter/importer pair in one process, and as the store in tests.
"""

import bisect
import logging
import threading
from typing import BinaryIO, Dict, List, Optional

from ...exceptions import KeyNotFoundError, StorageError
from ...rate_limiter import RateGate
from ..base import SegmentStore

logger = logging.getLogger(__name__)


class MemorySegmentStore(SegmentStore):
    """Dictionary-backed implementation of SegmentStore."""

    def __init__(self, rate_gate: Optional[RateGate] = None):
        super().__init__(rate_gate)
        self._objects: Dict[str, bytes] = {}
        self._keys: List[str] = []
        self._lock = threading.Lock()
        self.connected = False

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False
        super().disconnect()

    def export(
        self,
        key: str,
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        self._throttle(cancel_event)
        data = source.read()

        with self._lock:
            if key not in self._objects:
                bisect.insort(self._keys, key)
            self._objects[key] = data

        logger.debug(f"Stored {key} ({len(data)} bytes)")
        return key

    def import_segment(
        self,
        key: str,
        dest: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        self._throttle(cancel_event)

        with self._lock:
            data = self._objects.get(key)
        if data is None:
            raise StorageError(f"No such key: {key}")

        dest.write(data)
        dest.flush()
        return len(data)

    def get_next_key(
        self,
        prefix: str,
        last_key: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        self._throttle(cancel_event)

        with self._lock:
            if last_key < prefix:
                index = bisect.bisect_left(self._keys, prefix)
            else:
                index = bisect.bisect_right(self._keys, last_key)
            if index < len(self._keys) and self._keys[index].startswith(prefix):
                return self._keys[index]

        raise KeyNotFoundError(prefix, last_key)

    def delete_all(
        self,
        prefix: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        self._throttle(cancel_event)

        with self._lock:
            doomed = [key for key in self._keys if key.startswith(prefix)]
            for key in doomed:
                del self._objects[key]
            self._keys = [key for key in self._keys if not key.startswith(prefix)]

        return len(doomed)

    def keys(self, prefix: str = "") -> List[str]:
        """All stored keys under prefix, in listing order."""
        with self._lock:
            return [key for key in self._keys if key.startswith(prefix)]
