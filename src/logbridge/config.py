"""
Configuration system for segment exporters, importers and their stores.

Provides:
- Dataclass options with validation
- Pure default filling for importer timing
- YAML loading with ${VAR} / ${VAR:default} environment substitution
- Store factory that builds a provider and its rate gate
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError
from .rate_limiter import RateGate
from .storage.base import SegmentStore
from .storage.providers.gcs import GCSSegmentStore
from .storage.providers.memory import MemorySegmentStore
from .storage.providers.s3 import S3SegmentStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0  # seconds
DEFAULT_ERROR_BACKOFF = 60.0  # seconds

SUPPORTED_PROVIDERS = {"s3", "gcs", "memory"}


@dataclass
class StoreConfig:
    """Configuration for a remote segment store."""
    provider: str = "s3"  # 's3', 'gcs', 'memory'
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint: Optional[str] = None
    key: Optional[str] = None
    secret: Optional[str] = None
    project_id: Optional[str] = None
    credentials_path: Optional[str] = None
    rate_per_second: float = 0  # <= 0 disables rate limiting

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If the provider is unknown or has no bucket
        """
        provider = (self.provider or "").lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(f"Unknown provider: {self.provider}")
        if provider != "memory" and not self.bucket:
            raise ConfigurationError("'bucket' field is required")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, with the secret masked."""
        return {
            "provider": self.provider,
            "bucket": self.bucket,
            "region": self.region,
            "endpoint": self.endpoint,
            "key": self.key,
            "secret": "***" if self.secret else None,
            "project_id": self.project_id,
            "credentials_path": self.credentials_path,
            "rate_per_second": self.rate_per_second,
        }


@dataclass
class ExporterConfig:
    """Configuration for an Exporter."""
    name: str
    store: StoreConfig = field(default_factory=StoreConfig)

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If name is empty or the store is invalid
        """
        if not self.name:
            raise ConfigurationError("invalid name, cannot be empty")
        self.store.validate()


@dataclass
class ImporterConfig:
    """Configuration for an Importer."""
    name: str
    directory: str
    store: StoreConfig = field(default_factory=StoreConfig)
    poll_interval: Optional[float] = None
    error_backoff: Optional[float] = None
    temp_dir: Optional[str] = None

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If name or directory is empty, a duration is
                negative, or the store is invalid
        """
        if not self.name:
            raise ConfigurationError("invalid name, cannot be empty")
        if not self.directory:
            raise ConfigurationError("invalid directory, cannot be empty")
        for label, value in (("poll_interval", self.poll_interval), ("error_backoff", self.error_backoff)):
            if value is not None and value < 0:
                raise ConfigurationError(f"'{label}' cannot be negative, got {value}")
        self.store.validate()

    def fill_defaults(self) -> "ImporterConfig":
        """Return a copy with unset timing options replaced by defaults."""
        return replace(
            self,
            poll_interval=DEFAULT_POLL_INTERVAL if not self.poll_interval else self.poll_interval,
            error_backoff=DEFAULT_ERROR_BACKOFF if self.error_backoff is None else self.error_backoff,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "directory": self.directory,
            "store": self.store.to_dict(),
            "poll_interval": self.poll_interval,
            "error_backoff": self.error_backoff,
            "temp_dir": self.temp_dir,
        }


class SegmentStoreFactory:
    """Factory for creating segment stores."""

    @staticmethod
    def create(config: StoreConfig) -> SegmentStore:
        """
        Create a segment store from config, with its own rate gate.

        Args:
            config: StoreConfig object

        Returns:
            SegmentStore instance (not yet connected). The store owns its
            gate; close() releases both.

        Raises:
            ConfigurationError: If the provider is unknown or has no bucket
        """
        config.validate()
        provider = config.provider.lower()
        gate = RateGate(config.rate_per_second)

        if provider == "s3":
            store = S3SegmentStore(
                bucket=config.bucket,
                region=config.region or "us-east-1",
                endpoint_url=config.endpoint,
                aws_access_key_id=config.key,
                aws_secret_access_key=config.secret,
                rate_gate=gate,
            )

        elif provider == "gcs":
            store = GCSSegmentStore(
                bucket=config.bucket,
                project_id=config.project_id,
                credentials_path=config.credentials_path,
                rate_gate=gate,
            )

        else:
            store = MemorySegmentStore(rate_gate=gate)

        store.owns_gate = True
        return store


class ConfigManager:
    """Manages configuration loading."""

    @staticmethod
    def load_yaml(config_path: Path) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config is invalid YAML
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {config_path}")
        return config

    @staticmethod
    def create_store_config(config_dict: Dict[str, Any]) -> StoreConfig:
        """
        Create StoreConfig from dictionary.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config_dict = ConfigManager._substitute_env_vars(config_dict or {})

        config = StoreConfig(
            provider=str(config_dict.get("provider", "s3")).lower(),
            bucket=config_dict.get("bucket"),
            region=config_dict.get("region"),
            endpoint=config_dict.get("endpoint"),
            key=config_dict.get("key"),
            secret=config_dict.get("secret"),
            project_id=config_dict.get("project_id"),
            credentials_path=config_dict.get("credentials_path"),
            rate_per_second=float(config_dict.get("rate_per_second") or 0),
        )
        config.validate()
        return config

    @staticmethod
    def create_exporter_config(config_dict: Dict[str, Any]) -> ExporterConfig:
        """Create ExporterConfig from dictionary."""
        config_dict = ConfigManager._substitute_env_vars(config_dict)

        config = ExporterConfig(
            name=config_dict.get("name", ""),
            store=ConfigManager.create_store_config(config_dict.get("store", {})),
        )
        config.validate()
        return config

    @staticmethod
    def create_importer_config(config_dict: Dict[str, Any]) -> ImporterConfig:
        """Create ImporterConfig from dictionary."""
        config_dict = ConfigManager._substitute_env_vars(config_dict)

        def _seconds(key: str) -> Optional[float]:
            value = config_dict.get(key)
            return None if value is None else float(value)

        config = ImporterConfig(
            name=config_dict.get("name", ""),
            directory=config_dict.get("directory", ""),
            store=ConfigManager.create_store_config(config_dict.get("store", {})),
            poll_interval=_seconds("poll_interval"),
            error_backoff=_seconds("error_backoff"),
            temp_dir=config_dict.get("temp_dir"),
        )
        config.validate()
        return config

    @staticmethod
    def _substitute_env_vars(config: Any) -> Any:
        """
        Recursively substitute environment variables in config.

        Format: ${VAR_NAME} or ${VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {k: ConfigManager._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [ConfigManager._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            pattern = r'\$\{([^}]+)\}'

            def replacer(match):
                var_spec = match.group(1)
                if ':' in var_spec:
                    var_name, default = var_spec.split(':', 1)
                    return os.getenv(var_name.strip(), default.strip())
                else:
                    return os.getenv(var_spec, match.group(0))

            return re.sub(pattern, replacer, config)
        else:
            return config
