"""
Tests for configuration loading, validation and the store factory.
"""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from logbridge.config import (
    DEFAULT_ERROR_BACKOFF,
    DEFAULT_POLL_INTERVAL,
    ConfigManager,
    ExporterConfig,
    ImporterConfig,
    SegmentStoreFactory,
    StoreConfig,
)
from logbridge.exceptions import ConfigurationError
from logbridge.storage.providers.gcs import GCSSegmentStore
from logbridge.storage.providers.memory import MemorySegmentStore
from logbridge.storage.providers.s3 import S3SegmentStore


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Tests: Validation
# ============================================================================

class TestStoreConfig:
    """Tests for StoreConfig."""

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            StoreConfig(provider="ftp", bucket="b").validate()

    def test_bucket_required(self):
        with pytest.raises(ConfigurationError, match="bucket"):
            StoreConfig(provider="s3").validate()

    def test_memory_needs_no_bucket(self):
        StoreConfig(provider="memory").validate()

    def test_secret_masked(self):
        """Test to_dict never exposes the secret."""
        d = StoreConfig(provider="s3", bucket="b", key="AKIA", secret="shh").to_dict()
        assert d["secret"] == "***"
        assert d["key"] == "AKIA"


class TestImporterConfig:
    """Tests for ImporterConfig."""

    def test_fill_defaults(self):
        """Test unset timing options get defaults."""
        config = ImporterConfig(name="ds", directory="/tmp/ds").fill_defaults()

        assert config.poll_interval == DEFAULT_POLL_INTERVAL
        assert config.error_backoff == DEFAULT_ERROR_BACKOFF

    def test_fill_defaults_keeps_explicit_values(self):
        config = ImporterConfig(
            name="ds", directory="/tmp/ds", poll_interval=2, error_backoff=0
        ).fill_defaults()

        assert config.poll_interval == 2
        assert config.error_backoff == 0

    def test_fill_defaults_does_not_mutate(self):
        """Test the caller's config is left as it was."""
        original = ImporterConfig(name="ds", directory="/tmp/ds", poll_interval=0)
        filled = original.fill_defaults()

        assert filled is not original
        assert original.poll_interval == 0
        assert original.error_backoff is None

    def test_empty_directory(self):
        with pytest.raises(ConfigurationError, match="directory"):
            ImporterConfig(name="ds", directory="", store=StoreConfig(provider="memory")).validate()

    def test_negative_backoff(self):
        with pytest.raises(ConfigurationError, match="error_backoff"):
            ImporterConfig(
                name="ds", directory="/tmp/ds", error_backoff=-1,
                store=StoreConfig(provider="memory"),
            ).validate()

    def test_store_validated(self):
        """Test store errors surface through the importer config."""
        with pytest.raises(ConfigurationError):
            ImporterConfig(name="ds", directory="/tmp/ds", store=StoreConfig(provider="s3")).validate()


class TestExporterConfig:
    """Tests for ExporterConfig."""

    def test_empty_name(self):
        with pytest.raises(ConfigurationError, match="invalid name, cannot be empty"):
            ExporterConfig(name="").validate()


# ============================================================================
# Tests: Factory
# ============================================================================

class TestSegmentStoreFactory:
    """Tests for SegmentStoreFactory."""

    def test_create_s3(self):
        store = SegmentStoreFactory.create(
            StoreConfig(provider="s3", bucket="segments", endpoint="http://minio:9000", rate_per_second=5)
        )
        try:
            assert isinstance(store, S3SegmentStore)
            assert store.bucket == "segments"
            assert store.region == "us-east-1"
            assert store.endpoint_url == "http://minio:9000"
            assert store.rate_gate.rate_per_second == 5
            assert store.owns_gate is True
        finally:
            store.close()

        assert store.rate_gate.enabled is False

    def test_create_gcs(self):
        store = SegmentStoreFactory.create(
            StoreConfig(provider="gcs", bucket="segments", project_id="proj")
        )
        assert isinstance(store, GCSSegmentStore)
        assert store.project_id == "proj"

    def test_create_memory(self):
        store = SegmentStoreFactory.create(StoreConfig(provider="memory"))
        assert isinstance(store, MemorySegmentStore)
        assert store.rate_gate.enabled is False

    def test_provider_case_insensitive(self):
        store = SegmentStoreFactory.create(StoreConfig(provider="MEMORY"))
        assert isinstance(store, MemorySegmentStore)

    def test_invalid_config(self):
        with pytest.raises(ConfigurationError):
            SegmentStoreFactory.create(StoreConfig(provider="azure", bucket="b"))


# ============================================================================
# Tests: YAML loading
# ============================================================================

class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_yaml(self, temp_dir):
        """Test loading an importer definition from YAML."""
        config_file = temp_dir / "importer.yaml"
        config_file.write_text(yaml.safe_dump({
            "name": "orders",
            "directory": str(temp_dir / "replica"),
            "poll_interval": 5,
            "store": {"provider": "s3", "bucket": "segments", "rate_per_second": 10},
        }))

        config = ConfigManager.create_importer_config(ConfigManager.load_yaml(config_file))

        assert config.name == "orders"
        assert config.poll_interval == 5.0
        assert config.error_backoff is None
        assert config.store.bucket == "segments"
        assert config.store.rate_per_second == 10.0

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ConfigManager.load_yaml(temp_dir / "missing.yaml")

    def test_load_empty_file(self, temp_dir):
        config_file = temp_dir / "empty.yaml"
        config_file.write_text("")
        assert ConfigManager.load_yaml(config_file) == {}

    def test_env_substitution(self, monkeypatch):
        """Test ${VAR} and ${VAR:default} expansion."""
        monkeypatch.setenv("LB_BUCKET", "from-env")
        monkeypatch.delenv("LB_REGION", raising=False)

        config = ConfigManager.create_store_config({
            "provider": "s3",
            "bucket": "${LB_BUCKET}",
            "region": "${LB_REGION:eu-west-1}",
        })

        assert config.bucket == "from-env"
        assert config.region == "eu-west-1"

    def test_unset_env_without_default_is_kept(self, monkeypatch):
        monkeypatch.delenv("LB_MISSING", raising=False)
        config = ConfigManager.create_store_config({"provider": "s3", "bucket": "${LB_MISSING}"})
        assert config.bucket == "${LB_MISSING}"

    def test_exporter_config_from_dict(self):
        config = ConfigManager.create_exporter_config({"name": "ds", "store": {"provider": "memory"}})
        assert config.name == "ds"
        assert config.store.provider == "memory"

    def test_invalid_importer_dict(self):
        with pytest.raises(ConfigurationError):
            ConfigManager.create_importer_config({"name": "ds", "store": {"provider": "memory"}})

    def test_load_logs_path(self, temp_dir):
        config_file = temp_dir / "c.yaml"
        config_file.write_text("name: ds\n")

        with patch("logbridge.config.logger") as mock_logger:
            ConfigManager.load_yaml(config_file)

        mock_logger.info.assert_called_once()
