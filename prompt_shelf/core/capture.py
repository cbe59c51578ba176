"""
Quick capture: save a piece of text as a new ungrouped prompt.

This path runs outside an editing session. It reads the whole prompt file,
appends one record and writes the whole file back, sharing no cache with a
session that may have the same file open (last write wins).
"""

from typing import Callable, Optional

from .debug_log import DebugLogger
from .storage import BlobHandle, ensure_initialized
from .store import RecordStore, utc_now
from .types import Record

ELLIPSIS = "..."


def capture_title(text: str, limit: int = 80) -> str:
    """Title for captured text: the trimmed text, cut to limit characters with an ellipsis."""
    text = text.strip()
    if len(text) > limit:
        return text[: limit - len(ELLIPSIS)] + ELLIPSIS
    return text


def quick_capture(
    handle: BlobHandle,
    text: str,
    clock: Callable[[], str] = utc_now,
    title_limit: int = 80,
    debug_logger: Optional[DebugLogger] = None,
) -> Optional[Record]:
    """
    Append text to the prompt file as a new record with no group or subgroup.

    Args:
        handle: Blob holding the prompt CSV
        text: Captured text; it is trimmed and used as the content
        clock: Timestamp source
        title_limit: Maximum title length
        debug_logger: Optional debug logger

    Returns:
        The new record, or None if text was blank (nothing is written)

    Raises:
        RecordValidationError: If a prompt with the same title already exists
            among the ungrouped prompts
        PersistenceError: If the file cannot be written
    """
    content = (text or "").strip()
    if not content:
        return None

    ensure_initialized(handle)
    store = RecordStore(clock=clock)
    store.load(handle.read_text())

    record = store.create(group="", subgroup="", title=capture_title(content, title_limit), content=content)
    handle.write_text(store.to_text())

    if debug_logger is not None:
        debug_logger.log_mutation("capture", record.id, {"title": record.title, "total": len(store)})
    return record
