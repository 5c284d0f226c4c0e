"""
Segment exporter: publishes sealed local segments to the object store.
"""

import logging
from typing import List, Optional

from .config import ExporterConfig, SegmentStoreFactory
from .naming import dataset_prefix, generate_filename
from .segments import SegmentLog, SegmentReader
from .storage.base import SegmentStore

logger = logging.getLogger(__name__)


class Exporter:
    """
    Uploads sealed segments under deterministic keys.

    Keys are ``<name>.<created_at>.moj``, the same naming the importer uses
    to rebuild its cursor, so an exported segment is discovered by every
    importer polling ``<name>.``.
    """

    def __init__(self, config: ExporterConfig, store: Optional[SegmentStore] = None):
        """
        Initialize the exporter.

        Args:
            config: Exporter configuration
            store: Segment store to upload to; built and connected from
                config.store if None

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()
        self.config = config
        self.prefix = dataset_prefix(config.name)

        self._owns_store = store is None
        if store is None:
            store = SegmentStoreFactory.create(config.store)
            store.connect()
        self.store = store

    def filename_for(self, reader: SegmentReader) -> str:
        """Remote key for a segment."""
        return generate_filename(self.prefix, reader.meta().created_at)

    def export(self, reader: SegmentReader) -> str:
        """
        Upload one sealed segment.

        The segment source is rewound first, since it may already have been
        read (e.g. for local durability checks).

        Args:
            reader: Segment to upload

        Returns:
            Remote key written

        Raises:
            StorageError: If the upload fails; the caller decides whether to
                retry the whole export
        """
        key = self.filename_for(reader)
        source = reader.read_seeker()
        source.seek(0)

        self.store.export(key, source)
        logger.info(f"Exported segment {reader.meta().created_at} as {key}")
        return key

    def export_log(self, log: SegmentLog, after_key: str = "") -> List[str]:
        """
        Export every segment of a local log whose key sorts after after_key.

        Segments are uploaded oldest first. The first failure stops the run
        and propagates; keys already uploaded stay uploaded.

        Args:
            log: Local segment log
            after_key: Last key known to be exported, "" for all segments

        Returns:
            Keys written, in upload order
        """
        exported = []
        for record in log.segments():
            key = generate_filename(self.prefix, record.created_at)
            if key <= after_key:
                continue
            exported.append(self.export(log.segment_reader(record.created_at)))

        logger.info(f"Exported {len(exported)} segments from {log.name}")
        return exported

    def close(self) -> None:
        """Disconnect the store if this exporter created it."""
        if self._owns_store:
            self.store.close()
