"""
Exception hierarchy for log segment synchronization errors.

Stores wrap vendor-specific SDK errors into these types so the import
watcher can tell "nothing new yet" apart from a failed remote call without
knowing which object store it is talking to.
"""


class LogBridgeError(Exception):
    """Base exception for all logbridge errors."""

    pass


class ConfigurationError(LogBridgeError):
    """
    Raised when an exporter, importer or store is misconfigured.

    Reasons may include:
    - Empty dataset name
    - Empty local directory for an importer
    - Unknown storage provider
    - Missing bucket name

    Raised at construction time; an importer that fails validation never
    starts its watcher thread.
    """

    pass


class StorageError(LogBridgeError):
    """
    Raised when a call to the remote object store fails.

    This is usually transient (network timeout, throttling, 5xx responses).
    The original SDK exception is chained as ``__cause__``.
    """

    pass


class KeyNotFoundError(StorageError):
    """
    Raised when no key exists under a prefix after the given cursor.

    This is the steady-state "caught up" signal for the import watcher,
    not a failure.
    """

    def __init__(self, prefix: str, last_key: str = ""):
        self.prefix = prefix
        self.last_key = last_key
        super().__init__(f"No key under {prefix!r} after {last_key!r}")


class OperationCancelled(LogBridgeError):
    """Raised when a throttled remote call is withdrawn because shutdown was requested."""

    pass


class SegmentFormatError(LogBridgeError):
    """
    Raised when bytes cannot be read as a sealed log segment.

    Reasons may include:
    - Truncated download (shorter than the segment header)
    - Wrong magic bytes (object was not written by an exporter)
    """

    pass


class MergeError(LogBridgeError):
    """
    Raised when the local log rejects a segment.

    The log is order-sensitive: a segment created at or before the newest
    merged segment is refused and the log is left untouched.
    """

    pass
