"""
Editing session over one prompt file.

A PromptSession owns the record store and the filter state for a single
persisted file. Presentation code dispatches intents (create, update, delete,
import, set_filter, ...) and receives a CommandResult carrying the new view.
Persisting is a side effect the session performs after each successful
mutation: the whole list is encoded and the whole file rewritten.

Failures come back as results rather than exceptions:
- "validation": the store rejected the change, nothing was modified
- "schema": an import file had the wrong header, nothing was merged
- "persistence": the write failed; the in-memory change is kept and the
  session stays dirty until save() succeeds
"""

from typing import Callable, Optional

from .codec import CSV_HEADERS, decode, header_matches
from .debug_log import DebugLogger
from .filters import compute_option_lists, compute_visible, reconcile_selection
from .index import build_index, build_tree
from .storage import BlobHandle, PersistenceError, ensure_initialized
from .store import RecordStore, RecordValidationError, new_record_id, utc_now
from .types import Axis, CommandResult, ExportBundle, FilterState, MergePolicy, Record, ViewState


class ImportSchemaError(Exception):
    """Raised when an import file does not have the expected header."""

    pass


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


def export_filename(now: Optional[str] = None, prefix: str = "prompts") -> str:
    """File name for an export, suffixed with a filesystem-safe timestamp."""
    stamp = (now or utc_now()).replace(":", "-").replace(".", "-")
    return f"{prefix}-{stamp}.csv"


def check_import_header(text: str) -> None:
    """
    Raises:
        ImportSchemaError: If the first row is not the expected header
    """
    header = decode(text).header
    if not header_matches(header):
        found = ",".join(header) if header else "(empty)"
        raise ImportSchemaError(f"Import rejected: expected columns {','.join(CSV_HEADERS)}, found {found}.")


class PromptSession:
    """
    Store, filter state and persistence for one prompt file.

    Args:
        handle: Blob holding the prompt CSV
        policy: How imports resolve id collisions
        clock: Timestamp source
        id_factory: Record id source
        debug_logger: Optional debug logger
    """

    def __init__(
        self,
        handle: BlobHandle,
        policy: MergePolicy = MergePolicy.APPEND,
        clock: Callable[[], str] = utc_now,
        id_factory: Callable[[], str] = new_record_id,
        debug_logger: Optional[DebugLogger] = None,
    ):
        self.handle = handle
        self.policy = policy
        self.clock = clock
        self.store = RecordStore(clock=clock, id_factory=id_factory)
        self.state = FilterState()
        self.dirty = False
        self.reinitialized = False
        self.debug_logger = debug_logger

    # --- lifecycle ---

    def open(self) -> ViewState:
        """
        Load the file, reinitializing it first if it is empty or malformed.

        Raises:
            PersistenceError: If the file can be neither read nor reinitialized
        """
        self.reinitialized = ensure_initialized(self.handle)
        self.store.load(self.handle.read_text())
        self.dirty = False
        self.state = reconcile_selection(build_index(self.store.records), self.state)

        if self.debug_logger is not None:
            report = self.store.last_load
            self.debug_logger.log_load(str(self.handle.path), report.kept, report.skipped, self.reinitialized)
        return self.view()

    def save(self) -> CommandResult:
        """Write the current records, e.g. to retry after a persistence failure."""
        return self._persisted(message="Saved.")

    # --- views ---

    def view(self) -> ViewState:
        records = self.store.records
        index = build_index(records)
        visible = compute_visible(records, self.state.group, self.state.subgroup, self.state.query)
        return ViewState(
            state=self.state,
            options=compute_option_lists(index, self.state.group, self.state.subgroup),
            visible=visible,
            tree=build_tree(visible, self.state),
            total=len(records),
            dirty=self.dirty,
        )

    def get(self, record_id: str) -> Optional[Record]:
        return self.store.get(record_id)

    def export(self) -> ExportBundle:
        return ExportBundle(filename=export_filename(self.clock()), text=self.store.to_text())

    # --- filter intents ---

    def set_filter(self, group=UNSET, subgroup=UNSET, query: Optional[str] = None) -> ViewState:
        """
        Change the selection and/or query.

        Only the arguments passed are changed; pass None or "" to clear an axis.
        The axis being set is kept even if it is not currently offered, the
        other axis is cleared if it stops being offered. When both axes are
        passed, group is applied first and then subgroup.
        """
        index = build_index(self.store.records)
        state = self.state
        if query is not None:
            state = state.model_copy(update={"query": query})
        if group is not UNSET:
            state = reconcile_selection(index, state.model_copy(update={"group": group}), changed=Axis.GROUP)
        if subgroup is not UNSET:
            state = reconcile_selection(index, state.model_copy(update={"subgroup": subgroup}), changed=Axis.SUBGROUP)
        self.state = state
        return self.view()

    def clear_filters(self) -> ViewState:
        self.state = FilterState()
        return self.view()

    # --- mutation intents ---

    def create(self, group: str = "", subgroup: str = "", title: str = "", content: str = "") -> CommandResult:
        try:
            record = self.store.create(group=group, subgroup=subgroup, title=title, content=content)
        except RecordValidationError as e:
            return self._rejected(e)
        self._log_mutation("create", record.id, {"title": record.title})
        return self._persisted(record=record, message=f'Created "{record.title}".')

    def update(
        self,
        record_id: str,
        group: Optional[str] = None,
        subgroup: Optional[str] = None,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> CommandResult:
        try:
            record = self.store.update(record_id, group=group, subgroup=subgroup, title=title, content=content)
        except RecordValidationError as e:
            return self._rejected(e)
        self._log_mutation("update", record.id, {"title": record.title})
        return self._persisted(record=record, message=f'Updated "{record.title}".')

    def delete(self, record_id: str) -> CommandResult:
        """Delete a record; an unknown id is a successful no-op."""
        record = self.store.get(record_id)
        if record is None or not self.store.delete(record_id):
            return CommandResult(ok=True, message=f"No prompt with id {record_id}; nothing deleted.", view=self.view())
        self._log_mutation("delete", record_id, {"title": record.title})
        return self._persisted(record=record, message=f'Deleted "{record.title}".')

    def import_text(self, text: str) -> CommandResult:
        """
        Merge an externally provided CSV into the store.

        The header is checked first; on mismatch the whole import is rejected.
        """
        try:
            check_import_header(text)
        except ImportSchemaError as e:
            if self.debug_logger is not None:
                self.debug_logger.log_import(self.policy.value, 0, 0, rejected_reason=str(e))
            return CommandResult(ok=False, error_kind="schema", message=str(e), view=self.view())

        rows = decode(text).rows
        added = self.store.import_merge(rows, self.policy)
        if self.debug_logger is not None:
            self.debug_logger.log_import(self.policy.value, len(rows), added)

        message = f"Imported {added} of {len(rows)} rows."
        if added == 0:
            return CommandResult(ok=True, added=0, rows=len(rows), message=message, view=self.view())
        result = self._persisted(added=added, message=message)
        return result.model_copy(update={"rows": len(rows)})

    # --- internals ---

    def _log_mutation(self, operation: str, record_id: str, details: dict) -> None:
        if self.debug_logger is not None:
            self.debug_logger.log_mutation(operation, record_id, details)

    def _rejected(self, error: RecordValidationError) -> CommandResult:
        if self.debug_logger is not None:
            self.debug_logger.log_failure("validation", error)
        return CommandResult(ok=False, error_kind="validation", message=error.reason, view=self.view())

    def _persisted(self, record: Optional[Record] = None, added: int = 0, message: str = "") -> CommandResult:
        """Reconcile the selection with the new record set, then write the file."""
        self.state = reconcile_selection(build_index(self.store.records), self.state)
        try:
            self.handle.write_text(self.store.to_text())
        except PersistenceError as e:
            self.dirty = True
            if self.debug_logger is not None:
                self.debug_logger.log_failure("persistence", e)
            return CommandResult(ok=False, error_kind="persistence", message=str(e), record=record, added=added, view=self.view())

        self.dirty = False
        return CommandResult(ok=True, message=message, record=record, added=added, view=self.view())
