"""
In-memory record store.

The store owns the authoritative list of prompt records and enforces the
record invariants: non-empty title and content, a unique
(group, subgroup, title) key compared case-insensitively, unique ids that are
never handed out again after deletion, and immutable creation timestamps.

Rows coming from a file (load or import) that break an invariant are dropped
silently. Interactive create/update calls that break one raise
RecordValidationError and leave the store unchanged.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel

from .codec import decode, encode, header_matches
from .index import NO_SUBGROUP_LABEL, UNGROUPED_LABEL, display_group, display_subgroup, strip_sentinel
from .types import CsvRow, MergePolicy, Record

DedupKey = Tuple[str, str, str]


class RecordValidationError(Exception):
    """Raised when a create or update would break a record invariant."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RecordNotFoundError(RecordValidationError):
    """Raised when an update targets an id that is not in the store."""

    pass


class LoadReport(BaseModel):
    """Summary of the last load: kept and skipped row counts, header check."""

    kept: int = 0
    skipped: int = 0
    header_ok: bool = True


def utc_now() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_record_id() -> str:
    return str(uuid.uuid4())


def normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def dedup_key(group: str, subgroup: str, title: str) -> DedupKey:
    """Uniqueness key of a record: trimmed, lower-cased group/subgroup/title."""
    return normalize(group), normalize(subgroup), normalize(title)


def _clean_group(value: Optional[str]) -> str:
    """Trimmed group; the "(Ungrouped)" label is stored as the empty group."""
    return strip_sentinel(value or "", UNGROUPED_LABEL)


def _clean_subgroup(value: Optional[str]) -> str:
    return strip_sentinel(value or "", NO_SUBGROUP_LABEL)


def _location(group: str, subgroup: str) -> str:
    return f"{display_group(group)} / {display_subgroup(subgroup)}"


class RecordStore:
    """
    Authoritative, ordered collection of records.

    Args:
        records: Initial records (assumed valid)
        clock: Callable returning the current timestamp string
        id_factory: Callable returning a fresh record id
    """

    def __init__(
        self,
        records: Optional[Iterable[Record]] = None,
        clock: Callable[[], str] = utc_now,
        id_factory: Callable[[], str] = new_record_id,
    ):
        self._clock = clock
        self._id_factory = id_factory
        self._records: List[Record] = list(records or [])
        self._retired_ids: Set[str] = set()
        self.last_load = LoadReport(kept=len(self._records))

    # --- read access ---

    @property
    def records(self) -> Tuple[Record, ...]:
        """Immutable snapshot of the current records in store order."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def get(self, record_id: str) -> Optional[Record]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def to_text(self) -> str:
        return encode(self._records)

    # --- helpers ---

    def _fresh_id(self, taken: Optional[Set[str]] = None) -> str:
        used = {record.id for record in self._records} | self._retired_ids | (taken or set())
        while True:
            candidate = self._id_factory()
            if candidate and candidate not in used:
                return candidate

    def _find_conflict(self, key: DedupKey, exclude_id: Optional[str] = None) -> Optional[Record]:
        for record in self._records:
            if record.id == exclude_id:
                continue
            if dedup_key(record.group, record.subgroup, record.title) == key:
                return record
        return None

    def _validate(self, group: str, subgroup: str, title: str, content: str, exclude_id: Optional[str] = None) -> None:
        if not title.strip():
            raise RecordValidationError("Title must not be empty.")
        if not content.strip():
            raise RecordValidationError("Content must not be empty.")
        conflict = self._find_conflict(dedup_key(group, subgroup, title), exclude_id)
        if conflict is not None:
            raise RecordValidationError(f'A prompt titled "{conflict.title}" already exists in {_location(conflict.group, conflict.subgroup)}.')

    def _row_to_record(self, row: CsvRow, taken: Set[str]) -> Optional[Record]:
        """Validate a file row into a Record, or None if it must be dropped."""
        title = row.title.strip()
        if not title or not row.content.strip():
            return None
        record_id = row.id.strip()
        if not record_id or record_id in taken:
            record_id = self._fresh_id(taken)
        now = self._clock()
        return Record(
            id=record_id,
            group=_clean_group(row.group),
            subgroup=_clean_subgroup(row.subgroup),
            title=title,
            content=row.content,
            created_at=row.created_at.strip() or now,
            updated_at=row.updated_at.strip() or now,
        )

    # --- operations ---

    def load(self, text: str) -> List[Record]:
        """
        Replace the store contents with the records decoded from text.

        Rows with an empty title or content are dropped, rows with an empty or
        repeated id get a fresh one, and missing timestamps default to now.
        The first row is treated as the header; whether it matches is recorded
        in last_load but does not stop the load. Never raises for bad input.
        """
        result = decode(text)
        records: List[Record] = []
        taken: Set[str] = set()
        self._records = []
        skipped = result.skipped

        for row in result.rows:
            record = self._row_to_record(row, taken)
            if record is None:
                skipped += 1
                continue
            taken.add(record.id)
            records.append(record)

        self._records = records
        self.last_load = LoadReport(kept=len(records), skipped=skipped, header_ok=header_matches(result.header))
        return list(records)

    def create(self, group: str = "", subgroup: str = "", title: str = "", content: str = "") -> Record:
        """
        Create a record with a fresh id and created_at = updated_at = now.

        Raises:
            RecordValidationError: If title or content is empty, or the
                (group, subgroup, title) key already exists
        """
        group, subgroup = _clean_group(group), _clean_subgroup(subgroup)
        title = (title or "").strip()
        content = content or ""
        self._validate(group, subgroup, title, content)

        now = self._clock()
        record = Record(id=self._fresh_id(), group=group, subgroup=subgroup, title=title, content=content, created_at=now, updated_at=now)
        self._records.append(record)
        return record

    def update(
        self,
        record_id: str,
        group: Optional[str] = None,
        subgroup: Optional[str] = None,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Record:
        """
        Update fields of an existing record; None leaves a field unchanged.

        The id and created_at are preserved and updated_at is bumped.

        Raises:
            RecordNotFoundError: If no record has record_id
            RecordValidationError: If the result would break an invariant
        """
        for position, existing in enumerate(self._records):
            if existing.id == record_id:
                break
        else:
            raise RecordNotFoundError(f"No prompt with id {record_id}.")

        new_group = existing.group if group is None else _clean_group(group)
        new_subgroup = existing.subgroup if subgroup is None else _clean_subgroup(subgroup)
        new_title = existing.title if title is None else title.strip()
        new_content = existing.content if content is None else content
        self._validate(new_group, new_subgroup, new_title, new_content, exclude_id=record_id)

        updated = existing.model_copy(
            update={
                "group": new_group,
                "subgroup": new_subgroup,
                "title": new_title,
                "content": new_content,
                "updated_at": max(self._clock(), existing.updated_at),
            }
        )
        self._records[position] = updated
        return updated

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False (and does nothing) if the id is absent."""
        for position, record in enumerate(self._records):
            if record.id == record_id:
                del self._records[position]
                self._retired_ids.add(record_id)
                return True
        return False

    def import_merge(self, rows: Iterable[CsvRow], policy: MergePolicy = MergePolicy.APPEND) -> int:
        """
        Merge decoded rows into the store.

        Invalid rows are dropped and rows whose (group, subgroup, title) key is
        already present are skipped. An id collision is resolved by policy:
        APPEND gives the row a fresh id, OVERWRITE replaces the classification,
        title and content of the record holding that id (created_at is kept).
        Only records present before the import are overwritten, each at most
        once; any other id collision falls back to a fresh id.

        Returns:
            Number of records added or overwritten
        """
        keys: Dict[DedupKey, str] = {dedup_key(r.group, r.subgroup, r.title): r.id for r in self._records}
        positions = {record.id: position for position, record in enumerate(self._records)}
        taken: Set[str] = set(positions) | self._retired_ids
        overwritable: Set[str] = set(positions)
        changed = 0

        for row in rows:
            # Fresh ids are only needed for empty ids here; collisions are handled below.
            record = self._row_to_record(row, set())
            if record is None:
                continue
            key = dedup_key(record.group, record.subgroup, record.title)
            if key in keys:
                continue

            if record.id in overwritable and policy == MergePolicy.OVERWRITE:
                overwritable.discard(record.id)
                position = positions[record.id]
                existing = self._records[position]
                del keys[dedup_key(existing.group, existing.subgroup, existing.title)]
                self._records[position] = existing.model_copy(
                    update={
                        "group": record.group,
                        "subgroup": record.subgroup,
                        "title": record.title,
                        "content": record.content,
                        "updated_at": max(self._clock(), existing.updated_at),
                    }
                )
                keys[key] = existing.id
                changed += 1
                continue

            if record.id in taken:
                record = record.model_copy(update={"id": self._fresh_id(taken)})
            taken.add(record.id)
            positions[record.id] = len(self._records)
            self._records.append(record)
            keys[key] = record.id
            changed += 1

        return changed
