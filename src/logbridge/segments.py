"""
Local append-only segment log and the sealed segment file format.

A segment is one sealed, immutable unit of the log. On the wire (and in the
importer's staging file) a segment is a fixed header followed by its raw
payload:

    offset 0   8 bytes   magic  b"LBSEG\\x00\\x01\\x00"
    offset 8   8 bytes   created_at, big-endian unsigned
    offset 16  ...       payload

The local log keeps segments in SQLite, keyed by creation timestamp. Merges
are order-sensitive: a segment is only accepted if it is strictly newer
than everything already in the log, which is what lets an importer rebuild
its cursor from ``meta().created_at`` after a restart.
"""

import io
import logging
import sqlite3
import struct
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

from .exceptions import MergeError, SegmentFormatError

logger = logging.getLogger(__name__)

SEGMENT_MAGIC = b"LBSEG\x00\x01\x00"
SEGMENT_HEADER = struct.Struct(">8sQ")

# SQLite INTEGER is signed 64-bit
MAX_CREATED_AT = 2 ** 63 - 1

SEGMENT_SCHEMA = """
CREATE TABLE IF NOT EXISTS segments (
    created_at INTEGER PRIMARY KEY,
    payload BLOB NOT NULL,
    origin TEXT NOT NULL,
    sealed_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class SegmentMeta:
    """Creation metadata of a segment (or of a whole log: its newest segment)."""
    created_at: int = 0


@dataclass
class SegmentRecord:
    """A segment as stored in the local log."""
    created_at: int
    payload: bytes
    origin: str  # 'local' or 'merged'
    sealed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (payload reported by size only)."""
        return {
            "created_at": self.created_at,
            "size": len(self.payload),
            "origin": self.origin,
            "sealed_at": self.sealed_at.isoformat(),
        }


def seal_segment(payload: bytes, created_at: int) -> bytes:
    """Serialize a payload into sealed segment bytes."""
    if not 0 <= created_at <= MAX_CREATED_AT:
        raise ValueError(f"created_at must be in [0, {MAX_CREATED_AT}], got {created_at}")
    return SEGMENT_HEADER.pack(SEGMENT_MAGIC, created_at) + payload


class SegmentReader:
    """
    Read view over a sealed segment held in a seekable binary source.

    The reader does not own the source; whoever opened it closes it.
    """

    def __init__(self, source: BinaryIO):
        """
        Args:
            source: Readable, seekable binary stream positioned anywhere

        Raises:
            SegmentFormatError: If the header is truncated, has a bad magic
                or carries a created_at beyond MAX_CREATED_AT
        """
        self._source = source
        source.seek(0)
        header = source.read(SEGMENT_HEADER.size)
        if len(header) < SEGMENT_HEADER.size:
            raise SegmentFormatError(
                f"Segment truncated: {len(header)} of {SEGMENT_HEADER.size} header bytes"
            )

        magic, created_at = SEGMENT_HEADER.unpack(header)
        if magic != SEGMENT_MAGIC:
            raise SegmentFormatError(f"Bad segment magic: {magic!r}")
        if created_at > MAX_CREATED_AT:
            raise SegmentFormatError(f"Segment created_at {created_at} is out of range")

        self._meta = SegmentMeta(created_at=created_at)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SegmentReader":
        """Create a reader over sealed segment bytes held in memory."""
        return cls(io.BytesIO(data))

    def meta(self) -> SegmentMeta:
        return self._meta

    def read_seeker(self) -> BinaryIO:
        """Return the underlying source (header included), for uploads."""
        return self._source

    def payload(self) -> bytes:
        """Read the segment payload."""
        self._source.seek(SEGMENT_HEADER.size)
        return self._source.read()


class SegmentLog:
    """
    SQLite-backed append-only segment log.

    One database file per log name, ``<directory>/<name>.db``. The log is
    owned by a single writer; the internal lock only makes status queries
    from other threads safe.
    """

    def __init__(self, directory: Union[str, Path], name: str):
        """
        Initialize the segment log. Call connect() (or use open()) before use.

        Args:
            directory: Directory holding the log database
            name: Log name, also the database file stem
        """
        self.directory = Path(directory).expanduser()
        self.name = name
        self.db_path = self.directory / f"{name}.db"
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @classmethod
    def open(cls, directory: Union[str, Path], name: str) -> "SegmentLog":
        """Open (creating if needed) the log ``name`` inside ``directory``."""
        log = cls(directory, name)
        log.connect()
        return log

    def connect(self) -> None:
        """Initialize database connection and schema."""
        self.directory.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.executescript(SEGMENT_SCHEMA)
        self._conn.commit()

        logger.info(f"SegmentLog opened {self.db_path} (created_at={self.meta().created_at})")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SegmentLog":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def filename(self) -> str:
        """Path of the log's database file."""
        return str(self.db_path)

    def meta(self) -> SegmentMeta:
        """Metadata of the newest segment; created_at is 0 for an empty log."""
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute("SELECT MAX(created_at) FROM segments").fetchone()
        return SegmentMeta(created_at=row[0] if row[0] is not None else 0)

    def append(self, payload: bytes, created_at: Optional[int] = None) -> SegmentReader:
        """
        Seal a new local segment.

        Args:
            payload: Segment contents
            created_at: Creation timestamp; defaults to the current time in
                nanoseconds, bumped past the newest segment if the clock
                went backwards

        Returns:
            Reader over the sealed segment, ready for export

        Raises:
            ValueError: If created_at is negative or does not fit in 63 bits
            MergeError: If an explicit created_at is not newer than the log
        """
        last = self.meta().created_at
        if created_at is None:
            created_at = max(time.time_ns(), last + 1)

        sealed = seal_segment(payload, created_at)
        self._insert(created_at, payload, origin="local", last=last)
        logger.debug(f"Sealed local segment {created_at} ({len(payload)} bytes)")
        return SegmentReader.from_bytes(sealed)

    def merge(self, reader: SegmentReader) -> int:
        """
        Merge an externally sourced segment into the log.

        Args:
            reader: Segment to merge

        Returns:
            Number of payload bytes merged

        Raises:
            MergeError: If the segment is not strictly newer than the log
        """
        created_at = reader.meta().created_at
        payload = reader.payload()
        self._insert(created_at, payload, origin="merged", last=self.meta().created_at)

        logger.info(f"Merged segment {created_at} ({len(payload)} bytes) into {self.name}")
        return len(payload)

    def _insert(self, created_at: int, payload: bytes, origin: str, last: int) -> None:
        if created_at <= last:
            raise MergeError(
                f"Segment {created_at} is not newer than {self.name} (created_at={last})"
            )

        with self._lock:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO segments (created_at, payload, origin, sealed_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    created_at,
                    sqlite3.Binary(payload),
                    origin,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()

    def segments(self) -> List[SegmentRecord]:
        """All segments, oldest first."""
        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                """
                SELECT created_at, payload, origin, sealed_at
                FROM segments
                ORDER BY created_at ASC
                """
            ).fetchall()

        return [
            SegmentRecord(
                created_at=row[0],
                payload=bytes(row[1]),
                origin=row[2],
                sealed_at=datetime.fromisoformat(row[3]),
            )
            for row in rows
        ]

    def segment_reader(self, created_at: int) -> SegmentReader:
        """
        Reader over one stored segment, for re-export.

        Raises:
            LookupError: If no segment has that creation timestamp
        """
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT payload FROM segments WHERE created_at = ?", (created_at,)
            ).fetchone()

        if row is None:
            raise LookupError(f"No segment created at {created_at} in {self.name}")
        return SegmentReader.from_bytes(seal_segment(bytes(row[0]), created_at))

    def get_stats(self) -> Dict[str, Any]:
        """Get log statistics."""
        with self._lock:
            conn = self._ensure_connected()
            total = conn.execute("SELECT COUNT(*) FROM segments").fetchone()[0]
            by_origin = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT origin, COUNT(*) FROM segments GROUP BY origin"
                )
            }

        stats = {
            "name": self.name,
            "total_segments": total,
            "segments_by_origin": by_origin,
            "created_at": self.meta().created_at,
        }
        if self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        return stats
