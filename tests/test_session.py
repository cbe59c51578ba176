"""
Tests for storage, the editing session, export and quick capture.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from prompt_shelf.core.capture import capture_title, quick_capture
from prompt_shelf.core.codec import decode, header_line
from prompt_shelf.core.debug_log import DebugLogger
from prompt_shelf.core.index import UNGROUPED_LABEL
from prompt_shelf.core.session import PromptSession, export_filename
from prompt_shelf.core.storage import FileBlobStore, PersistenceError, ensure_initialized
from prompt_shelf.core.store import RecordValidationError
from prompt_shelf.core.types import MergePolicy

HEADER_ONLY = header_line() + "\r\n"
STAMP = "2024-01-01T00:00:00.000Z"


class FakeClock:
    def __init__(self):
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2024-01-01T00:{self.ticks // 60:02d}:{self.ticks % 60:02d}.000Z"


@pytest.fixture
def blobs(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "home")


@pytest.fixture
def session(blobs: FileBlobStore) -> PromptSession:
    prompt_session = PromptSession(blobs.handle("prompts.csv"), clock=FakeClock())
    prompt_session.open()
    return prompt_session


def seed(session: PromptSession) -> None:
    """Groups {A: {x, y}, B: {y}}."""
    for group, subgroup, title in [("A", "x", "one"), ("A", "y", "two"), ("B", "y", "three")]:
        assert session.create(group=group, subgroup=subgroup, title=title, content=f"{title} body").ok


class TestStorage:
    """Test the blob store and file initialization."""

    def test_handle_creates_missing_blob(self, blobs: FileBlobStore):
        """Acquiring a handle creates an empty file."""
        handle = blobs.handle("prompts.csv")
        assert handle.path.exists()
        assert handle.read_text() == ""

    def test_handle_rejects_paths(self, blobs: FileBlobStore):
        """Only bare file names are accepted."""
        with pytest.raises(ValueError):
            blobs.handle("../escape.csv")

    def test_handle_without_create(self, blobs: FileBlobStore):
        """A missing blob is an error when create is False."""
        with pytest.raises(PersistenceError):
            blobs.handle("absent.csv", create=False)

    def test_write_preserves_line_endings(self, blobs: FileBlobStore):
        """CRLF and bare CR are written and read back untouched."""
        handle = blobs.handle("prompts.csv")
        handle.write_text("a\r\nb\rc\n")
        assert handle.read_text() == "a\r\nb\rc\n"
        assert handle.path.read_bytes() == b"a\r\nb\rc\n"

    def test_ensure_initialized_resets_bad_files(self, blobs: FileBlobStore):
        """Empty and wrong-header files are rewritten header-only."""
        handle = blobs.handle("prompts.csv")
        assert ensure_initialized(handle) is True
        assert handle.read_text() == HEADER_ONLY

        assert ensure_initialized(handle) is False

        handle.write_text("ID,Group,Subgroup,Title,Body,Created,Modified\r\n1,,,T,C,,")
        assert ensure_initialized(handle) is True
        assert handle.read_text() == HEADER_ONLY


class TestSessionMutations:
    """Test create/update/delete through the session."""

    def test_open_reinitializes_empty_file(self, session: PromptSession):
        """Opening an empty file writes the header."""
        assert session.reinitialized is True
        assert session.handle.read_text() == HEADER_ONLY
        assert session.view().total == 0

    def test_create_persists_whole_file(self, session: PromptSession):
        """A successful create rewrites the file with the new record."""
        result = session.create(group="Work", subgroup="Emails", title="Greeting", content='Hi, "friend"')

        assert result.ok
        assert result.record is not None
        text = session.handle.read_text()
        assert '"Hi, ""friend"""' in text
        assert [row.title for row in decode(text).rows] == ["Greeting"]
        assert result.view.total == 1

    def test_validation_failure_changes_nothing(self, session: PromptSession):
        """A duplicate is reported as a validation error and not written."""
        session.create(group="Work", title="Greeting", content="Hi")
        before = session.handle.read_text()

        result = session.create(group="work", title="GREETING", content="Again")

        assert not result.ok
        assert result.error_kind == "validation"
        assert "already exists" in result.message
        assert session.handle.read_text() == before
        assert session.view().total == 1

    def test_update_and_delete(self, session: PromptSession):
        """Updates and deletes are persisted; deleting twice is a no-op."""
        record = session.create(title="Greeting", content="Hi").record

        updated = session.update(record.id, content="Hello")
        assert updated.ok
        assert updated.record.created_at == record.created_at

        deleted = session.delete(record.id)
        assert deleted.ok
        assert decode(session.handle.read_text()).rows == []

        again = session.delete(record.id)
        assert again.ok
        assert "nothing deleted" in again.message

    def test_persistence_failure_keeps_memory_state(self, session: PromptSession):
        """A failed write is reported, state is kept dirty, and save() retries."""
        with patch.object(session.handle, "write_text", side_effect=PersistenceError("disk full")):
            result = session.create(title="Greeting", content="Hi")

        assert not result.ok
        assert result.error_kind == "persistence"
        assert "disk full" in result.message
        assert session.dirty is True
        assert result.view.dirty is True
        assert session.view().total == 1
        assert decode(session.handle.read_text()).rows == []

        retry = session.save()
        assert retry.ok
        assert session.dirty is False
        assert [row.title for row in decode(session.handle.read_text()).rows] == ["Greeting"]

    def test_reload_reads_what_was_written(self, session: PromptSession, blobs: FileBlobStore):
        """A second session sees the first session's records."""
        seed(session)
        other = PromptSession(blobs.handle("prompts.csv"))
        view = other.open()
        assert other.reinitialized is False
        assert view.total == 3


class TestSessionFilters:
    """Test filter intents and selection maintenance."""

    def test_subgroup_then_group(self, session: PromptSession):
        """Selecting y and then A keeps both and narrows each list."""
        seed(session)

        view = session.set_filter(subgroup="y")
        assert view.options.groups == ["A", "B"]

        view = session.set_filter(group="A")
        assert view.state.subgroup == "y"
        assert view.options.subgroups == ["x", "y"]
        assert [r.title for r in view.visible] == ["two"]

    def test_mutation_clears_vanished_selection(self, session: PromptSession):
        """Deleting the last record of the selected group clears the group."""
        seed(session)
        session.set_filter(group="B")
        only_b = [r for r in session.store.records if r.group == "B"][0]

        result = session.delete(only_b.id)

        assert result.view.state.group is None
        assert result.view.total == 2

    def test_empty_selection_clears_axis(self, session: PromptSession):
        """Setting an axis to the empty string removes that filter."""
        seed(session)
        session.create(title="Loose", content="no group")
        session.set_filter(group="A")

        view = session.set_filter(group="")

        assert view.state.group is None
        assert len(view.visible) == 4

        view = session.set_filter(group=UNGROUPED_LABEL)
        assert [r.title for r in view.visible] == ["Loose"]

    def test_query_and_clear(self, session: PromptSession):
        """The query narrows the view; clear_filters resets everything."""
        seed(session)
        view = session.set_filter(query="THREE")
        assert [r.title for r in view.visible] == ["three"]
        assert view.tree[0].expanded

        view = session.clear_filters()
        assert len(view.visible) == 3
        assert view.state.query == ""


class TestImportExport:
    """Test bulk import and export."""

    def test_import_rejects_wrong_header(self, session: PromptSession):
        """A renamed column rejects the whole import."""
        seed(session)
        text = "ID,Group,Subgroup,Title,Body,Created,Modified\r\n9,C,z,New,Body,,"

        result = session.import_text(text)

        assert not result.ok
        assert result.error_kind == "schema"
        assert result.added == 0
        assert session.view().total == 3

    def test_import_merges_and_persists(self, session: PromptSession):
        """Valid rows are merged, duplicates skipped, and the file rewritten."""
        seed(session)
        text = "\r\n".join([header_line(), "x1,a,X,ONE,dup,,", "x2,C,z,New,Body,,", ",C,z,,no title,,"])

        result = session.import_text(text)

        assert result.ok
        assert result.added == 1
        assert result.message == "Imported 1 of 3 rows."
        assert result.rows == 3
        assert len(decode(session.handle.read_text()).rows) == 4

    def test_import_overwrite_policy(self, blobs: FileBlobStore):
        """With OVERWRITE an imported row replaces the record with its id."""
        session = PromptSession(blobs.handle("prompts.csv"), policy=MergePolicy.OVERWRITE)
        session.open()
        record = session.create(title="Greeting", content="Hi").record

        text = "\r\n".join([header_line(), f"{record.id},Work,,Greeting v2,Hello,,"])
        result = session.import_text(text)

        assert result.added == 1
        assert session.get(record.id).title == "Greeting v2"
        assert session.view().total == 1

    def test_export(self, session: PromptSession):
        """Export carries the encoded records and a timestamped file name."""
        seed(session)
        bundle = session.export()

        assert bundle.filename.startswith("prompts-2024-01-01T00-")
        assert bundle.filename.endswith("-000Z.csv")
        assert bundle.text == session.store.to_text()
        assert export_filename(STAMP) == "prompts-2024-01-01T00-00-00-000Z.csv"


class TestQuickCapture:
    """Test the single-record capture path."""

    def test_long_selection_title_truncated(self, blobs: FileBlobStore):
        """A 120-character selection gets a 77 + '...' title and full content."""
        text = "".join(chr(ord("a") + i % 26) for i in range(120))
        handle = blobs.handle("prompts.csv")

        record = quick_capture(handle, text)

        assert len(record.title) == 80
        assert record.title == text[:77] + "..."
        assert record.content == text
        rows = decode(handle.read_text()).rows
        assert rows[0].content == text
        assert rows[0].group == ""

    def test_capture_appends_to_existing_file(self, session: PromptSession, blobs: FileBlobStore):
        """Capture keeps the records already in the file."""
        seed(session)
        quick_capture(blobs.handle("prompts.csv"), "  remember this  ")

        rows = decode(blobs.handle("prompts.csv").read_text()).rows
        assert len(rows) == 4
        assert rows[-1].title == "remember this"

    def test_blank_capture_writes_nothing(self, blobs: FileBlobStore):
        """Whitespace-only text is ignored."""
        handle = blobs.handle("prompts.csv")
        assert quick_capture(handle, " \n\t ") is None
        assert handle.read_text() == ""

    def test_duplicate_capture_rejected(self, blobs: FileBlobStore):
        """Capturing the same text twice breaks the uniqueness rule."""
        handle = blobs.handle("prompts.csv")
        quick_capture(handle, "same text")
        with pytest.raises(RecordValidationError):
            quick_capture(handle, "same text")

    def test_capture_title(self):
        """Short text is kept whole; the limit is configurable."""
        assert capture_title("  short  ") == "short"
        assert capture_title("abcdefghij", limit=8) == "abcde..."


class TestDebugLogger:
    """Test JSON debug logs."""

    def test_disabled_writes_nothing(self, tmp_path: Path):
        """With debugging off no directory is created."""
        logger = DebugLogger(tmp_path, enabled=False)
        logger.log_mutation("create", "1")
        assert not (tmp_path / "debug").exists()

    def test_session_events_logged(self, tmp_path: Path):
        """Loads and mutations produce JSON files in the session directory."""
        logger = DebugLogger(tmp_path, enabled=True)
        session = PromptSession(FileBlobStore(tmp_path).handle("prompts.csv"), debug_logger=logger)
        session.open()
        session.create(title="Greeting", content="Hi")
        session.create(title="greeting", content="dup")

        names = sorted(p.name for p in logger.session_dir.iterdir())
        assert any(name.startswith("load_") for name in names)
        assert any(name.startswith("mutation_create_") for name in names)
        assert any(name.startswith("validation_failure_") for name in names)
