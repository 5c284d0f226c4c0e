"""
Import watcher: polls the object store and merges new segments locally.

Architecture:
    - One daemon thread per Importer, started at construction
    - Segments are imported strictly one at a time, in listing order
    - The cursor (last merged key) lives in memory and is rebuilt from the
      local log's created_at on startup, so no checkpoint file is kept

State machine:
    IDLE -> LISTING -> DOWNLOADING -> MERGING -> ADVANCED -> IDLE
    CLOSED is entered once the cancellation event is observed at the top of
    the loop (or while a throttled call is waiting on the rate gate).

Failure policy:
    - No newer key: sleep poll_interval, poll again
    - Listing error: log, sleep error_backoff, poll again
    - Download or merge error (including a segment whose header timestamp
      disagrees with its key): log, keep the cursor, retry the same key on
      the next iteration. There is no skip or quarantine; a permanently
      broken segment is retried until an operator fixes it.
"""

import os
import tempfile
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import ImporterConfig, SegmentStoreFactory
from .exceptions import (
    KeyNotFoundError,
    LogBridgeError,
    OperationCancelled,
    SegmentFormatError,
)
from .logging_utils import get_importer_logger
from .naming import SEGMENT_EXTENSION, cursor_for, dataset_prefix, parse_created_at
from .notify import ImportNotifier, ImportSignal
from .segments import SegmentLog, SegmentReader
from .storage.base import SegmentStore


class WatcherState(str, Enum):
    """Where the watcher loop currently is."""
    IDLE = "idle"
    LISTING = "listing"
    DOWNLOADING = "downloading"
    MERGING = "merging"
    ADVANCED = "advanced"
    CLOSED = "closed"


class Importer:
    """
    Background watcher that imports remote segments into a local log.

    Usage:
        ```python
        importer = Importer(ImporterConfig(name="orders", directory="/var/lib/orders"))
        signal = importer.on_import()

        while signal.wait(timeout=60):
            refresh_views(importer.log)

        importer.close()
        ```

    Thread Safety:
        The watcher thread owns the cursor and the local log. Properties and
        get_status() may be read from any thread; close() may be called
        from any thread.
    """

    def __init__(
        self,
        config: ImporterConfig,
        store: Optional[SegmentStore] = None,
        log: Optional[SegmentLog] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Validate configuration, open the local log and start watching.

        Args:
            config: Importer configuration
            store: Segment store to poll; built and connected from
                config.store if None
            log: Local segment log; opened from config.directory and
                config.name if None
            stop_event: External cancellation token; a private one is
                created if None. Setting it stops the watcher.

        Raises:
            ConfigurationError: If the configuration is invalid. The watcher
                is not started.
        """
        config.validate()
        self.config = config.fill_defaults()
        self.name = config.name
        self.prefix = dataset_prefix(config.name)
        self.out = get_importer_logger(config.name)

        self._owns_store = store is None
        if store is None:
            store = SegmentStoreFactory.create(config.store)
            store.connect()
        self.store = store

        self._owns_log = log is None
        self.log = log
        try:
            if self.log is None:
                self.log = SegmentLog.open(config.directory, config.name)
            self._last_key = cursor_for(self.name, self.log.meta().created_at)
        except Exception:
            self._release()
            raise

        self._stop = stop_event or threading.Event()
        self._notifier = ImportNotifier()
        self._state = WatcherState.IDLE

        self.imported = 0
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None
        self.last_import: Optional[datetime] = None

        self._thread = threading.Thread(
            target=self._watch,
            name=f"logbridge-importer-{self.name}",
            daemon=True,
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Observer surface
    # ------------------------------------------------------------------

    def on_import(self) -> ImportSignal:
        """Read-only signal that fires (coalesced) after successful merges."""
        return self._notifier.signal()

    @property
    def last_key(self) -> str:
        """Cursor: key of the most recently merged segment, "" if none."""
        return self._last_key

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def closed(self) -> bool:
        """Whether cancellation has been requested."""
        return self._stop.is_set()

    @property
    def running(self) -> bool:
        """Whether the watcher thread is still alive."""
        return self._thread.is_alive()

    def get_status(self) -> Dict[str, Any]:
        """
        Get current watcher status.

        Returns:
            Dictionary with cursor, state and failure statistics.
        """
        return {
            "name": self.name,
            "prefix": self.prefix,
            "last_key": self._last_key,
            "state": self._state.value,
            "imported": self.imported,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_import": self.last_import.isoformat() if self.last_import else None,
            "running": self.running,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, timeout: Optional[float] = None) -> bool:
        """
        Request shutdown and wait for the watcher thread.

        An in-flight download or merge runs to completion first. Resources
        the importer opened itself (log, store) are released once the thread
        has exited.

        Args:
            timeout: Seconds to wait for the thread, None waits forever

        Returns:
            True if the watcher thread has exited
        """
        self._stop.set()
        self._thread.join(timeout)

        if self._thread.is_alive():
            self.out.warning(f"Watcher still busy after {timeout}s, leaving resources open")
            return False

        self._release()
        return True

    def _release(self) -> None:
        """Close the log and store this importer opened itself."""
        if self._owns_log and self.log is not None:
            self.log.close()
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> "Importer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Watcher loop
    # ------------------------------------------------------------------

    def _watch(self) -> None:
        self.out.info(f"Watching {self.prefix} after {self._last_key or '<start>'}")

        try:
            while not self._stop.is_set():
                self._state = WatcherState.LISTING
                try:
                    next_key = self.store.get_next_key(
                        self.prefix, self._last_key, cancel_event=self._stop
                    )
                except KeyNotFoundError:
                    # Caught up
                    self._state = WatcherState.IDLE
                    self._sleep(self.config.poll_interval)
                    continue
                except OperationCancelled:
                    break
                except Exception as e:
                    self._record_failure(e)
                    self.out.error(
                        f"Error getting next key: {e}. "
                        f"Sleeping for {self.config.error_backoff:g}s"
                    )
                    self._state = WatcherState.IDLE
                    self._sleep(self.config.error_backoff)
                    continue

                try:
                    self._process(next_key)
                except OperationCancelled:
                    break
                except Exception as e:
                    # Cursor stays put so the same key is retried next iteration
                    self._record_failure(e)
                    self.out.error(
                        f"Error processing <{next_key}>: {e}",
                        exc_info=not isinstance(e, LogBridgeError),
                    )
                    self._state = WatcherState.IDLE
                    continue

                self._advance(next_key)
        finally:
            self._state = WatcherState.CLOSED
            self.out.info(f"Watcher stopped at {self._last_key or '<start>'}")

    def _process(self, key: str) -> None:
        """Download key into a private staging file and merge it."""
        self._state = WatcherState.DOWNLOADING

        staging = tempfile.NamedTemporaryFile(
            prefix=f"{self.name}.",
            suffix=SEGMENT_EXTENSION,
            dir=self.config.temp_dir,
            delete=False,
        )
        try:
            with staging:
                size = self.store.import_segment(key, staging, cancel_event=self._stop)
                self.out.debug(f"Downloaded <{key}> ({size} bytes) to {staging.name}")

                self._state = WatcherState.MERGING
                reader = SegmentReader(staging)
                self._check_key(key, reader)
                self.log.merge(reader)
        finally:
            os.remove(staging.name)

    def _check_key(self, key: str, reader: SegmentReader) -> None:
        """
        Raises:
            SegmentFormatError: If the header timestamp disagrees with the
                key. The cursor is rebuilt from created_at on restart, so the
                two must name the same segment.
        """
        try:
            expected = parse_created_at(key, self.prefix)
        except ValueError as e:
            raise SegmentFormatError(str(e)) from e

        created_at = reader.meta().created_at
        if created_at != expected:
            raise SegmentFormatError(
                f"Segment under <{key}> was created at {created_at}, key says {expected}"
            )

    def _advance(self, key: str) -> None:
        self._state = WatcherState.ADVANCED
        self._last_key = key
        self.imported += 1
        self.consecutive_failures = 0
        self.last_import = datetime.now(timezone.utc)
        self.out.info(f"Imported <{key}>")

        if not self._notifier.notify():
            self.out.debug("Import notification already pending, coalesced")

        self._state = WatcherState.IDLE

    def _record_failure(self, error: Exception) -> None:
        self.consecutive_failures += 1
        self.last_error = f"{type(error).__name__}: {error}"

    def _sleep(self, seconds: float) -> None:
        """Sleep, waking early on cancellation."""
        self._stop.wait(seconds)
