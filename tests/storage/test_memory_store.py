"""
Tests for the in-process segment store and the shared store behavior.
"""

import io
import threading
import time

import pytest

from logbridge.exceptions import KeyNotFoundError, OperationCancelled, StorageError
from logbridge.rate_limiter import RateGate
from logbridge.storage.providers.memory import MemorySegmentStore


@pytest.fixture
def store():
    """Connected store holding three keys of dataset 'ds' and one of 'other'."""
    s = MemorySegmentStore()
    s.connect()
    for key in ("ds.300.moj", "ds.100.moj", "other.100.moj", "ds.200.moj"):
        s.export(key, io.BytesIO(key.encode()))
    yield s
    s.disconnect()


class TestGetNextKey:
    """Tests for cursor-based listing."""

    def test_from_start(self, store):
        """Test an empty cursor returns the first key under the prefix."""
        assert store.get_next_key("ds.", "") == "ds.100.moj"

    def test_strictly_after_cursor(self, store):
        """Test the cursor key itself is never returned."""
        assert store.get_next_key("ds.", "ds.100.moj") == "ds.200.moj"
        assert store.get_next_key("ds.", "ds.200.moj") == "ds.300.moj"

    def test_cursor_between_keys(self, store):
        """Test a cursor that is not itself a stored key."""
        assert store.get_next_key("ds.", "ds.150.moj") == "ds.200.moj"

    def test_caught_up(self, store):
        """Test the last key raises KeyNotFoundError."""
        with pytest.raises(KeyNotFoundError) as exc_info:
            store.get_next_key("ds.", "ds.300.moj")

        assert exc_info.value.prefix == "ds."
        assert exc_info.value.last_key == "ds.300.moj"

    def test_prefix_is_respected(self, store):
        """Test keys of another dataset are invisible."""
        assert store.get_next_key("other.", "") == "other.100.moj"
        with pytest.raises(KeyNotFoundError):
            store.get_next_key("other.", "other.100.moj")

    def test_not_found_is_storage_error(self):
        """Test callers catching StorageError also see not-found."""
        assert issubclass(KeyNotFoundError, StorageError)


class TestTransfer:
    """Tests for export and import."""

    def test_import_writes_object(self, store):
        dest = io.BytesIO()
        assert store.import_segment("ds.100.moj", dest) == len(b"ds.100.moj")
        assert dest.getvalue() == b"ds.100.moj"

    def test_import_missing_key(self, store):
        with pytest.raises(StorageError):
            store.import_segment("ds.999.moj", io.BytesIO())

    def test_export_overwrites(self, store):
        store.export("ds.100.moj", io.BytesIO(b"new"))

        dest = io.BytesIO()
        store.import_segment("ds.100.moj", dest)
        assert dest.getvalue() == b"new"
        assert store.keys("ds.") == ["ds.100.moj", "ds.200.moj", "ds.300.moj"]

    def test_import_next(self, store):
        """Test import_next combines listing and download."""
        dest = io.BytesIO()
        assert store.import_next("ds.", "ds.100.moj", dest) == "ds.200.moj"
        assert dest.getvalue() == b"ds.200.moj"

    def test_import_next_caught_up(self, store):
        with pytest.raises(KeyNotFoundError):
            store.import_next("ds.", "ds.300.moj", io.BytesIO())


class TestDeleteAll:
    """Tests for delete_all."""

    def test_deletes_only_prefix(self, store):
        assert store.delete_all("ds.") == 3
        assert store.keys() == ["other.100.moj"]

    def test_delete_nothing(self, store):
        assert store.delete_all("missing.") == 0


class TestRateLimitedStore:
    """Tests for the rate gate in front of store calls."""

    def test_calls_are_throttled(self):
        """Test store calls share one gate."""
        s = MemorySegmentStore(rate_gate=RateGate(20))
        try:
            start = time.monotonic()
            s.export("ds.1.moj", io.BytesIO(b"a"))
            s.export("ds.2.moj", io.BytesIO(b"b"))
            s.get_next_key("ds.", "")
            assert time.monotonic() - start >= 2 / 20 - 0.01
            assert s.rate_gate.admitted == 3
        finally:
            s.rate_gate.close()

    def test_cancelled_call_raises(self):
        """Test a throttled call raises OperationCancelled when cancelled."""
        s = MemorySegmentStore(rate_gate=RateGate(0.2))
        cancel = threading.Event()
        threading.Timer(0.1, cancel.set).start()
        try:
            with pytest.raises(OperationCancelled):
                s.get_next_key("ds.", "", cancel_event=cancel)
        finally:
            s.rate_gate.close()

    def test_context_manager(self):
        with MemorySegmentStore() as s:
            assert s.connected is True
        assert s.connected is False

    def test_reconnect_stays_throttled(self):
        """Test the gate still limits calls after a disconnect/connect cycle."""
        gate = RateGate(20)
        s = MemorySegmentStore(rate_gate=gate)
        try:
            with s:
                pass

            with s:
                start = time.monotonic()
                for i in range(3):
                    s.export(f"ds.{i}.moj", io.BytesIO(b"x"))
                elapsed = time.monotonic() - start

            assert gate.enabled is True
            assert elapsed >= 2 / 20 - 0.01
            assert gate.admitted == 3
        finally:
            gate.close()

    def test_shared_gate_survives_disconnect(self):
        """Test one store disconnecting leaves a shared gate running for the other."""
        gate = RateGate(20)
        first = MemorySegmentStore(rate_gate=gate)
        second = MemorySegmentStore(rate_gate=gate)
        try:
            first.connect()
            second.connect()
            first.disconnect()

            second.export("ds.1.moj", io.BytesIO(b"x"))
            assert gate.enabled is True
            assert gate.admitted == 1
        finally:
            gate.close()

    def test_close_releases_owned_gate(self):
        """Test close() stops a gate the store owns and leaves a borrowed one alone."""
        borrowed = RateGate(20)
        s = MemorySegmentStore(rate_gate=borrowed)
        s.close()
        assert borrowed.enabled is True

        s.owns_gate = True
        s.close()
        assert borrowed.enabled is False
