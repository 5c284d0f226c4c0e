"""
Tests for the segment exporter.
"""

import io
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from logbridge.config import ExporterConfig, StoreConfig
from logbridge.exceptions import ConfigurationError, StorageError
from logbridge.exporter import Exporter
from logbridge.segments import SegmentLog, SegmentReader, seal_segment
from logbridge.storage.base import SegmentStore
from logbridge.storage.providers.memory import MemorySegmentStore


@pytest.fixture
def store():
    s = MemorySegmentStore()
    s.connect()
    return s


@pytest.fixture
def exporter(store):
    return Exporter(ExporterConfig(name="ds", store=StoreConfig(provider="memory")), store=store)


class TestExport:
    """Tests for Exporter.export."""

    def test_key_from_created_at(self, exporter, store):
        """Test the key is name, created_at and extension."""
        key = exporter.export(SegmentReader.from_bytes(seal_segment(b"abc", 100)))

        assert key == "ds.100.moj"
        assert store.keys() == ["ds.100.moj"]

    def test_uploads_whole_segment(self, exporter, store):
        """Test the stored object is the full sealed segment."""
        data = seal_segment(b"payload", 7)
        key = exporter.export(SegmentReader.from_bytes(data))

        dest = io.BytesIO()
        store.import_segment(key, dest)
        assert dest.getvalue() == data

    def test_rewinds_consumed_reader(self, exporter, store):
        """Test a reader whose payload was already read is uploaded in full."""
        data = seal_segment(b"payload", 8)
        reader = SegmentReader.from_bytes(data)
        reader.payload()

        key = exporter.export(reader)

        dest = io.BytesIO()
        store.import_segment(key, dest)
        assert dest.getvalue() == data

    def test_export_is_overwrite(self, exporter, store):
        """Test re-exporting the same segment writes the same key."""
        data = seal_segment(b"payload", 9)
        first = exporter.export(SegmentReader.from_bytes(data))
        second = exporter.export(SegmentReader.from_bytes(data))

        assert first == second
        assert store.keys() == ["ds.9.moj"]

    def test_store_error_propagates(self):
        """Test upload failures reach the caller unchanged."""
        failing = Mock(spec=SegmentStore)
        failing.export.side_effect = StorageError("upload failed")
        exporter = Exporter(ExporterConfig(name="ds", store=StoreConfig(provider="memory")), store=failing)

        with pytest.raises(StorageError, match="upload failed"):
            exporter.export(SegmentReader.from_bytes(seal_segment(b"x", 1)))

    def test_empty_name_rejected(self, store):
        """Test an empty dataset name is a configuration error."""
        with pytest.raises(ConfigurationError, match="invalid name"):
            Exporter(ExporterConfig(name=""), store=store)

    def test_builds_store_from_config(self):
        """Test the store is created and connected when none is given."""
        exporter = Exporter(ExporterConfig(name="ds", store=StoreConfig(provider="memory")))

        assert isinstance(exporter.store, MemorySegmentStore)
        assert exporter.store.connected is True
        exporter.close()
        assert exporter.store.connected is False

    def test_close_leaves_injected_store(self, exporter, store):
        """Test a caller-supplied store stays connected after close."""
        exporter.close()
        assert store.connected is True


class TestExportLog:
    """Tests for Exporter.export_log."""

    @pytest.fixture
    def log(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log = SegmentLog.open(Path(tmpdir), "ds")
            for stamp in (100, 200, 300):
                log.append(f"p{stamp}".encode(), created_at=stamp)
            yield log
            log.close()

    def test_exports_all_segments(self, exporter, store, log):
        """Test every segment is exported oldest first."""
        keys = exporter.export_log(log)

        assert keys == ["ds.100.moj", "ds.200.moj", "ds.300.moj"]
        assert store.keys("ds.") == keys

    def test_skips_already_exported(self, exporter, store, log):
        """Test segments at or before after_key are skipped."""
        keys = exporter.export_log(log, after_key="ds.200.moj")
        assert keys == ["ds.300.moj"]

    def test_stops_on_first_failure(self, log):
        """Test a failed upload stops the run."""
        failing = Mock(spec=SegmentStore)
        failing.export.side_effect = [None, StorageError("quota"), None]
        exporter = Exporter(ExporterConfig(name="ds", store=StoreConfig(provider="memory")), store=failing)

        with pytest.raises(StorageError):
            exporter.export_log(log)

        assert failing.export.call_count == 2
