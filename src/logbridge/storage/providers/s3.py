"""
AWS S3 segment store implementation.

Features:
- Server-side encrypted, private uploads
- Streaming downloads
- Single-key "next after cursor" listing via ListObjectsV2 StartAfter
- Custom endpoints for S3-compatible stores (MinIO, Ceph, R2)
"""

import logging
import threading
from typing import Any, BinaryIO, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...exceptions import KeyNotFoundError, StorageError
from ...rate_limiter import RateGate
from ..base import SegmentStore

logger = logging.getLogger(__name__)


class S3SegmentStore(SegmentStore):
    """AWS S3 implementation of SegmentStore."""

    # Batch limit of DeleteObjects
    DELETE_BATCH_SIZE = 1000

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        rate_gate: Optional[RateGate] = None,
    ):
        """
        Initialize S3 segment store.

        Args:
            bucket: S3 bucket name
            region: AWS region
            endpoint_url: Custom endpoint for S3-compatible stores
            aws_access_key_id: AWS access key (uses env if not provided)
            aws_secret_access_key: AWS secret key (uses env if not provided)
            rate_gate: Gate shared by every call of this store

        Raises:
            ValueError: If bucket name is empty
        """
        super().__init__(rate_gate)

        if not bucket:
            raise ValueError("S3 bucket name is required")

        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self._client: Any = None
        self._session = None

    def connect(self) -> None:
        """Establish connection to S3. The bucket must already exist."""
        if self.aws_access_key_id and self.aws_secret_access_key:
            self._session = boto3.Session(
                aws_access_key_id=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key,
                region_name=self.region,
            )
        else:
            self._session = boto3.Session(region_name=self.region)

        # Create client with retry config
        config = Config(
            retries={'max_attempts': 3, 'mode': 'adaptive'},
            max_pool_connections=10,
        )
        self._client = self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            config=config,
        )
        logger.info(f"Connected to S3 bucket: {self.bucket}")

    def disconnect(self) -> None:
        """Close connection to S3."""
        if self._client:
            self._client.close()
            self._client = None
            logger.info("Disconnected from S3")
        super().disconnect()

    def _ensure_connected(self) -> Any:
        if self._client is None:
            raise RuntimeError("Not connected to S3. Call connect() first.")
        return self._client

    def export(
        self,
        key: str,
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Upload source to s3://bucket/key."""
        client = self._ensure_connected()
        self._throttle(cancel_event)

        logger.info(f"Uploading to s3://{self.bucket}/{key}")

        try:
            response = client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=source,
                ServerSideEncryption="AES256",
                ACL="private",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload of {key} failed: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e

        etag = response.get('ETag', '').strip('"')
        logger.debug(f"Uploaded {key} (ETag: {etag})")
        return key

    def import_segment(
        self,
        key: str,
        dest: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Stream s3://bucket/key into dest."""
        client = self._ensure_connected()
        self._throttle(cancel_event)

        logger.info(f"Downloading s3://{self.bucket}/{key}")

        bytes_downloaded = 0
        try:
            body = client.get_object(Bucket=self.bucket, Key=key)['Body']
            with body:
                while True:
                    chunk = body.read(self.DEFAULT_CHUNK_SIZE)
                    if not chunk:
                        break
                    dest.write(chunk)
                    bytes_downloaded += len(chunk)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 download of {key} failed: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e

        dest.flush()
        logger.debug(f"Downloaded {key} ({bytes_downloaded} bytes)")
        return bytes_downloaded

    def get_next_key(
        self,
        prefix: str,
        last_key: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Return the first key under prefix after last_key."""
        client = self._ensure_connected()
        self._throttle(cancel_event)

        try:
            response = client.list_objects_v2(
                Bucket=self.bucket,
                Prefix=prefix,
                StartAfter=last_key,
                MaxKeys=1,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list s3://{self.bucket}/{prefix}: {e}") from e

        contents = response.get('Contents') or []
        if not contents:
            raise KeyNotFoundError(prefix, last_key)

        return contents[0]['Key']

    def delete_all(
        self,
        prefix: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Delete every object under prefix."""
        client = self._ensure_connected()

        deleted = 0
        paginator = client.get_paginator('list_objects_v2')

        try:
            self._throttle(cancel_event)
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys = [{'Key': obj['Key']} for obj in page.get('Contents', [])]
                for start in range(0, len(keys), self.DELETE_BATCH_SIZE):
                    batch = keys[start:start + self.DELETE_BATCH_SIZE]
                    self._throttle(cancel_event)
                    client.delete_objects(
                        Bucket=self.bucket,
                        Delete={'Objects': batch, 'Quiet': True},
                    )
                    deleted += len(batch)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete s3://{self.bucket}/{prefix}: {e}")
            raise StorageError(f"Failed to delete {prefix}: {e}") from e

        logger.info(f"Deleted {deleted} objects under s3://{self.bucket}/{prefix}")
        return deleted
