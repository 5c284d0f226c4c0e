"""
Deterministic remote key naming for log segments.

Exporter and importer both derive keys through these functions: the
exporter to name an upload, the importer to rebuild its cursor from the
local log's ``created_at``. Keys must therefore never depend on anything
other than the prefix and the creation timestamp.

Ordering note: keys are compared lexically by the object store. Decimal
timestamps only sort correctly while they share a digit count, so callers
should seal segments with fixed-width timestamps (nanoseconds since the
epoch are 19 digits wide from 2001 until 2286).
"""

SEGMENT_EXTENSION = ".moj"


def generate_filename(prefix: str, created_at: int, extension: str = SEGMENT_EXTENSION) -> str:
    """
    Build the remote key for a segment.

    Args:
        prefix: Dataset prefix, including its trailing dot (e.g. "orders.")
        created_at: Segment creation timestamp
        extension: Segment file extension

    Returns:
        Key of the form ``<prefix><created_at><extension>``
    """
    return f"{prefix}{int(created_at)}{extension}"


def parse_created_at(key: str, prefix: str, extension: str = SEGMENT_EXTENSION) -> int:
    """
    Recover the creation timestamp from a key built by generate_filename.

    Raises:
        ValueError: If the key does not belong to the prefix or is malformed
    """
    if not key.startswith(prefix) or not key.endswith(extension):
        raise ValueError(f"Key {key!r} was not generated for prefix {prefix!r}")

    stamp = key[len(prefix):len(key) - len(extension)]
    if not stamp.isdigit():
        raise ValueError(f"Key {key!r} has no decimal timestamp")

    return int(stamp)


def dataset_prefix(name: str) -> str:
    """Return the key prefix that scopes one dataset."""
    return name + "."


def cursor_for(name: str, created_at: int) -> str:
    """
    Rebuild an import cursor from local log metadata.

    An empty log (created_at of 0) starts from the beginning of the prefix.
    """
    if created_at <= 0:
        return ""
    return generate_filename(dataset_prefix(name), created_at)
