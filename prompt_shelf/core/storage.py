"""
Single-file blob storage for the prompt CSV.

A FileBlobStore is a flat directory of named text blobs. Handles are acquired
by name (created on demand), read whole and written whole. Writes go to a
temporary sibling file that then replaces the target, so a failed write leaves
the previous contents in place.
"""

import os
import tempfile
from pathlib import Path
from typing import Union

from .codec import ROW_SEPARATOR, decode, header_line, header_matches


class PersistenceError(Exception):
    """Raised when reading or writing a blob fails."""

    pass


class BlobHandle:
    """Read/write access to one named blob."""

    def __init__(self, path: Path):
        self.path = path

    @property
    def name(self) -> str:
        return self.path.name

    def read_text(self) -> str:
        """Read the whole blob as UTF-8 text, line endings untouched."""
        try:
            with open(self.path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read '{self.path}': {e}")

    def write_text(self, text: str) -> None:
        """Replace the whole blob with text."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", newline="", dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                f.write(text)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write '{self.path}': {e}")


class FileBlobStore:
    """
    Directory-backed store of named blobs.

    Args:
        root: Directory holding the blobs; created on first handle acquisition
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()

    def handle(self, name: str, create: bool = True) -> BlobHandle:
        """
        Acquire a handle by bare file name, creating an empty blob if absent.

        Raises:
            ValueError: If name contains a path component
            PersistenceError: If the blob is absent and create is False, or
                it cannot be created
        """
        if not name or Path(name).name != name:
            raise ValueError(f"Blob name must be a bare file name: {name!r}")

        path = self.root / name
        if not path.exists():
            if not create:
                raise PersistenceError(f"Blob not found: {path}")
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                path.touch()
            except OSError as e:
                raise PersistenceError(f"Failed to create '{path}': {e}")
        return BlobHandle(path)


def ensure_initialized(handle: BlobHandle) -> bool:
    """
    Make sure the blob holds a CSV file with the expected header.

    The blob is rewritten header-only when it is empty, unreadable, or its
    header does not match.

    Returns:
        True if the blob was reinitialized
    """
    try:
        text = handle.read_text()
    except PersistenceError:
        text = None

    if text is not None and text.strip() and header_matches(decode(text).header):
        return False

    handle.write_text(header_line() + ROW_SEPARATOR)
    return True
