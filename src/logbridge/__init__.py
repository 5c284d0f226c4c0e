"""
Append-only log segment replication through an object store.

Provides:
- Exporter: uploads sealed local segments under deterministic keys
- Importer: polls the store and merges new segments into a local log
- Rate gate shared by every remote call of one store
- S3, GCS and in-process store implementations
"""

from .config import (
    ConfigManager,
    ExporterConfig,
    ImporterConfig,
    SegmentStoreFactory,
    StoreConfig,
)
from .exceptions import (
    ConfigurationError,
    KeyNotFoundError,
    LogBridgeError,
    MergeError,
    OperationCancelled,
    SegmentFormatError,
    StorageError,
)
from .exporter import Exporter
from .importer import Importer, WatcherState
from .logging_utils import get_logger, setup_logging
from .naming import cursor_for, generate_filename, parse_created_at
from .notify import ImportNotifier, ImportSignal
from .rate_limiter import RateGate
from .segments import SegmentLog, SegmentMeta, SegmentReader, SegmentRecord, seal_segment
from .storage import GCSSegmentStore, MemorySegmentStore, S3SegmentStore, SegmentStore

__version__ = "0.1.0"

__all__ = [
    # Sync sides
    "Exporter",
    "Importer",
    "WatcherState",
    # Notifications
    "ImportNotifier",
    "ImportSignal",
    # Rate limiting
    "RateGate",
    # Local log
    "SegmentLog",
    "SegmentMeta",
    "SegmentReader",
    "SegmentRecord",
    "seal_segment",
    # Naming
    "generate_filename",
    "parse_created_at",
    "cursor_for",
    # Stores
    "SegmentStore",
    "S3SegmentStore",
    "GCSSegmentStore",
    "MemorySegmentStore",
    # Configuration
    "StoreConfig",
    "ExporterConfig",
    "ImporterConfig",
    "SegmentStoreFactory",
    "ConfigManager",
    # Logging
    "setup_logging",
    "get_logger",
    # Errors
    "LogBridgeError",
    "ConfigurationError",
    "StorageError",
    "KeyNotFoundError",
    "OperationCancelled",
    "SegmentFormatError",
    "MergeError",
]
