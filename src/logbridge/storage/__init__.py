"""
Object store access for segment synchronization.

Provides:
- Abstract segment store interface (export, import, get-next)
- Implementations for AWS S3, GCP GCS and an in-process store
"""

from .base import SegmentStore
from .providers.s3 import S3SegmentStore
from .providers.gcs import GCSSegmentStore
from .providers.memory import MemorySegmentStore

__all__ = [
    "SegmentStore",
    "S3SegmentStore",
    "GCSSegmentStore",
    "MemorySegmentStore",
]
