"""Segment store provider implementations."""

from .s3 import S3SegmentStore
from .gcs import GCSSegmentStore
from .memory import MemorySegmentStore

__all__ = [
    "S3SegmentStore",
    "GCSSegmentStore",
    "MemorySegmentStore",
]
