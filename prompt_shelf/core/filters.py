"""
Two-level filter engine.

Given the classification index and the current Group/Subgroup selection this
module computes the option lists for both selectors, keeps the selection
consistent when those lists change, and derives the visible record subset.
Everything here is pure: inputs are never mutated.

Selections are option-list labels. None or "" means no filter on that axis;
the sentinel labels "(Ungrouped)" and "(no subgroup)" select records whose
group or subgroup is empty.
"""

from typing import Iterable, List, Optional

from .index import (
    NO_SUBGROUP_LABEL,
    UNGROUPED_LABEL,
    ClassificationIndex,
    display_group,
    display_subgroup,
    group_labels,
    groups_containing,
    selection_key,
    subgroup_labels,
)
from .types import Axis, FilterState, OptionLists, Record


def compute_option_lists(index: ClassificationIndex, selected_group: Optional[str], selected_subgroup: Optional[str]) -> OptionLists:
    """
    Compute the constrained Group and Subgroup option lists.

    Selecting one axis narrows the other; it never narrows itself, so the user
    can always switch to a different value on the axis they are driving.
    - no selection: all groups, all subgroups
    - group only: all groups, subgroups within the group
    - subgroup only: groups containing the subgroup, all subgroups
    - both: groups containing the subgroup, subgroups within the group

    Empty values are offered under their sentinel labels.
    """
    group_key = selection_key(selected_group, UNGROUPED_LABEL)
    subgroup_key = selection_key(selected_subgroup, NO_SUBGROUP_LABEL)

    if subgroup_key is None:
        groups = group_labels(index)
    else:
        groups = groups_containing(index, subgroup_key)

    subgroups = subgroup_labels(index, group_key)
    return OptionLists(
        groups=[display_group(label) for label in groups],
        subgroups=[display_subgroup(label) for label in subgroups],
    )


def reconcile_selection(index: ClassificationIndex, state: FilterState, changed: Optional[Axis] = None) -> FilterState:
    """
    Clear selections that are no longer offered by their option list.

    The axis in changed is the one the user just set and is left as-is even
    when absent. With changed=None (the record set changed) both axes are
    checked, group first, and the subgroup is checked against the lists that
    result from the group decision. An empty selection is normalized to None.
    """
    group, subgroup = state.group or None, state.subgroup or None

    if changed != Axis.GROUP and group is not None:
        if group not in compute_option_lists(index, group, subgroup).groups:
            group = None

    if changed != Axis.SUBGROUP and subgroup is not None:
        if subgroup not in compute_option_lists(index, group, subgroup).subgroups:
            subgroup = None

    return state.model_copy(update={"group": group, "subgroup": subgroup})


def matches_query(record: Record, query: str) -> bool:
    needle = (query or "").strip().lower()
    if not needle:
        return True
    return needle in record.title.lower() or needle in record.content.lower()


def compute_visible(
    records: Iterable[Record],
    selected_group: Optional[str] = None,
    selected_subgroup: Optional[str] = None,
    query: str = "",
) -> List[Record]:
    """
    Filter records by exact group/subgroup label and free-text query.

    None or "" on an axis means no constraint on it; an empty query matches
    every record. The result is sorted by updated_at, newest first (ISO-8601
    strings sort chronologically); ties keep their input order.
    """
    group_key = selection_key(selected_group, UNGROUPED_LABEL)
    subgroup_key = selection_key(selected_subgroup, NO_SUBGROUP_LABEL)
    visible = [
        record
        for record in records
        if (group_key is None or record.group == group_key)
        and (subgroup_key is None or record.subgroup == subgroup_key)
        and matches_query(record, query)
    ]
    return sorted(visible, key=lambda record: record.updated_at, reverse=True)
