"""
Google Cloud Storage (GCS) segment store implementation.

Features:
- Integration with existing GCS buckets
- Streaming uploads and downloads
- "Next after cursor" listing via list_blobs start_offset
"""

import logging
import threading
from typing import BinaryIO, Optional

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import storage

from ...exceptions import KeyNotFoundError, StorageError
from ...rate_limiter import RateGate
from ..base import SegmentStore

logger = logging.getLogger(__name__)


class GCSSegmentStore(SegmentStore):
    """Google Cloud Storage implementation of SegmentStore."""

    DELETE_BATCH_SIZE = 100

    def __init__(
        self,
        bucket: str,
        project_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
        rate_gate: Optional[RateGate] = None,
    ):
        """
        Initialize GCS segment store.

        Args:
            bucket: GCS bucket name
            project_id: Google Cloud project ID
            credentials_path: Path to service account JSON
            rate_gate: Gate shared by every call of this store
        """
        super().__init__(rate_gate)

        if not bucket:
            raise ValueError("GCS bucket name is required")

        self.bucket_name = bucket
        self.project_id = project_id
        self.credentials_path = credentials_path
        self._client = None
        self._bucket = None

    def connect(self) -> None:
        """Establish connection to GCS."""
        if self.credentials_path:
            self._client = storage.Client.from_service_account_json(
                self.credentials_path,
                project=self.project_id,
            )
        else:
            self._client = storage.Client(project=self.project_id)

        self._bucket = self._client.bucket(self.bucket_name)
        logger.info(f"Connected to GCS bucket: {self.bucket_name}")

    def disconnect(self) -> None:
        """Close connection to GCS."""
        if self._client:
            self._client.close()
            self._client = None
            self._bucket = None
            logger.info("Disconnected from GCS")
        super().disconnect()

    def _ensure_connected(self):
        if self._bucket is None:
            raise RuntimeError("Not connected to GCS. Call connect() first.")
        return self._bucket

    def export(
        self,
        key: str,
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Upload source to gs://bucket/key."""
        bucket = self._ensure_connected()
        self._throttle(cancel_event)

        logger.info(f"Uploading to gs://{self.bucket_name}/{key}")

        try:
            bucket.blob(key).upload_from_file(source, rewind=False)
        except GoogleAPICallError as e:
            logger.error(f"GCS upload of {key} failed: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e

        return key

    def import_segment(
        self,
        key: str,
        dest: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Stream gs://bucket/key into dest."""
        bucket = self._ensure_connected()
        self._throttle(cancel_event)

        logger.info(f"Downloading gs://{self.bucket_name}/{key}")

        start = dest.tell()
        try:
            self._client.download_blob_to_file(bucket.blob(key), dest)
        except GoogleAPICallError as e:
            logger.error(f"GCS download of {key} failed: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e

        dest.flush()
        return dest.tell() - start

    def get_next_key(
        self,
        prefix: str,
        last_key: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Return the first blob name under prefix after last_key."""
        self._ensure_connected()
        self._throttle(cancel_event)

        # start_offset is inclusive, so the cursor itself may come back first
        try:
            blobs = self._client.list_blobs(
                self.bucket_name,
                prefix=prefix,
                start_offset=last_key or None,
                max_results=2,
            )
            for blob in blobs:
                if blob.name > last_key:
                    return blob.name
        except GoogleAPICallError as e:
            raise StorageError(f"Failed to list gs://{self.bucket_name}/{prefix}: {e}") from e

        raise KeyNotFoundError(prefix, last_key)

    def delete_all(
        self,
        prefix: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Delete every blob under prefix."""
        bucket = self._ensure_connected()
        self._throttle(cancel_event)

        deleted = 0
        try:
            blobs = list(self._client.list_blobs(self.bucket_name, prefix=prefix))
            for start in range(0, len(blobs), self.DELETE_BATCH_SIZE):
                batch = blobs[start:start + self.DELETE_BATCH_SIZE]
                self._throttle(cancel_event)
                bucket.delete_blobs(batch)
                deleted += len(batch)
        except GoogleAPICallError as e:
            logger.error(f"Failed to delete gs://{self.bucket_name}/{prefix}: {e}")
            raise StorageError(f"Failed to delete {prefix}: {e}") from e

        logger.info(f"Deleted {deleted} blobs under gs://{self.bucket_name}/{prefix}")
        return deleted
