"""
Type definitions for the Prompt Shelf.

This module defines the record model persisted in the CSV file, the typed row
produced at the codec boundary, and the view/result structures handed back to
presentation code by the session.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Record(BaseModel):
    """
    A single prompt entry.

    Attributes:
        id: Opaque unique identifier
        group: Top-level classification (empty means ungrouped)
        subgroup: Second-level classification, meaningful only within its group
        title: Non-empty title
        content: Non-empty prompt body
        created_at: ISO-8601 creation timestamp, immutable after first write
        updated_at: ISO-8601 timestamp of the most recent mutation
    """

    id: str = Field(..., description="Opaque unique identifier")
    group: str = Field(default="", description="Group label (empty = ungrouped)")
    subgroup: str = Field(default="", description="Subgroup label (empty = no subgroup)")
    title: str = Field(..., description="Prompt title")
    content: str = Field(..., description="Prompt content")
    created_at: str = Field(..., description="Creation timestamp")
    updated_at: str = Field(..., description="Last modification timestamp")


class CsvRow(BaseModel):
    """
    One decoded data row, mapped from positional CSV fields.

    Values are raw strings exactly as they appeared in the file; validation into
    a Record happens in the store.
    """

    id: str = ""
    group: str = ""
    subgroup: str = ""
    title: str = ""
    content: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_fields(cls, fields: List[str]) -> "CsvRow":
        """Build a row from positional fields, padding missing trailing columns."""
        padded = list(fields[:7]) + [""] * (7 - min(len(fields), 7))
        return cls(
            id=padded[0],
            group=padded[1],
            subgroup=padded[2],
            title=padded[3],
            content=padded[4],
            created_at=padded[5],
            updated_at=padded[6],
        )

    @classmethod
    def from_record(cls, record: Record) -> "CsvRow":
        return cls(**record.model_dump())

    def to_fields(self) -> List[str]:
        return [self.id, self.group, self.subgroup, self.title, self.content, self.created_at, self.updated_at]


class MergePolicy(str, Enum):
    """How an imported row whose id collides with an existing record is handled."""

    APPEND = "append"
    OVERWRITE = "overwrite"


class Axis(str, Enum):
    """Selection axis of the two-level filter."""

    GROUP = "group"
    SUBGROUP = "subgroup"


class FilterState(BaseModel):
    """
    Current filter selection.

    Selections are option-list labels. None or an empty string on an axis
    means "no filter"; the "(Ungrouped)" and "(no subgroup)" labels select
    records with an empty group or subgroup.
    """

    group: Optional[str] = Field(default=None, description="Selected group label, None or empty = all")
    subgroup: Optional[str] = Field(default=None, description="Selected subgroup label, None or empty = all")
    query: str = Field(default="", description="Free-text query over title and content")


class OptionLists(BaseModel):
    """Constrained option lists for the Group and Subgroup selectors."""

    groups: List[str] = Field(default_factory=list)
    subgroups: List[str] = Field(default_factory=list)


class SubgroupNode(BaseModel):
    label: str
    expanded: bool = False
    records: List[Record] = Field(default_factory=list)


class GroupNode(BaseModel):
    label: str
    expanded: bool = False
    subgroups: List[SubgroupNode] = Field(default_factory=list)


class ViewState(BaseModel):
    """
    Snapshot of everything presentation needs to render the current view.
    """

    state: FilterState = Field(default_factory=FilterState)
    options: OptionLists = Field(default_factory=OptionLists)
    visible: List[Record] = Field(default_factory=list)
    tree: List[GroupNode] = Field(default_factory=list)
    total: int = Field(default=0, description="Number of records in the store")
    dirty: bool = Field(default=False, description="In-memory state not yet persisted")


class CommandResult(BaseModel):
    """
    Outcome of a session intent.

    error_kind is one of "validation", "schema" or "persistence" when ok is False.
    """

    ok: bool = True
    error_kind: Optional[str] = None
    message: str = ""
    record: Optional[Record] = None
    added: int = 0
    rows: int = Field(default=0, description="Data rows read from an import file")
    view: Optional[ViewState] = None


class ExportBundle(BaseModel):
    filename: str
    text: str
