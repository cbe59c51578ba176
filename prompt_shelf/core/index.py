"""
Classification index: the Group -> Subgroup -> records hierarchy.

The index is a plain nested dict keyed on the raw (possibly empty) group and
subgroup strings. It is a pure function of the record list and is rebuilt
after every mutation. Sentinel labels for empty values are never stored; they
appear in option lists and the tree view, and a selection equal to a sentinel
picks the empty bucket (selection_key).
"""

from typing import Dict, Iterable, List, Optional, Sequence

from .timing import timer
from .types import FilterState, GroupNode, Record, SubgroupNode

UNGROUPED_LABEL = "(Ungrouped)"
NO_SUBGROUP_LABEL = "(no subgroup)"

ClassificationIndex = Dict[str, Dict[str, List[str]]]


@timer
def build_index(records: Iterable[Record]) -> ClassificationIndex:
    """Map group -> subgroup -> record ids, preserving record order. O(n)."""
    index: ClassificationIndex = {}
    for record in records:
        index.setdefault(record.group, {}).setdefault(record.subgroup, []).append(record.id)
    return index


def sort_labels(labels: Iterable[str]) -> List[str]:
    """Distinct labels sorted case-insensitively, ties broken by the raw string."""
    return sorted(set(labels), key=lambda label: (label.lower(), label))


def group_labels(index: ClassificationIndex) -> List[str]:
    return sort_labels(index.keys())


def subgroup_labels(index: ClassificationIndex, group: Optional[str] = None) -> List[str]:
    """Subgroups within group, or across all groups when group is None."""
    if group is None:
        return sort_labels(subgroup for subgroups in index.values() for subgroup in subgroups)
    return sort_labels(index.get(group, {}).keys())


def groups_containing(index: ClassificationIndex, subgroup: str) -> List[str]:
    return sort_labels(group for group, subgroups in index.items() if subgroup in subgroups)


def display_group(label: str) -> str:
    return label or UNGROUPED_LABEL


def display_subgroup(label: str) -> str:
    return label or NO_SUBGROUP_LABEL


def strip_sentinel(value: str, sentinel: str) -> str:
    """Map a typed-in sentinel label back to the empty value it stands for."""
    value = value.strip()
    return "" if value.lower() == sentinel.lower() else value


def selection_key(selection: Optional[str], sentinel: str) -> Optional[str]:
    """
    Index key picked by a Group/Subgroup selection.

    None and "" mean no filter (returns None). The sentinel label selects the
    empty bucket (returns "").
    """
    if not selection:
        return None
    if selection == sentinel:
        return ""
    return selection


def _matches_query(records: Sequence[Record], query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return False
    return any(needle in record.title.lower() or needle in record.content.lower() for record in records)


def build_tree(records: Sequence[Record], state: Optional[FilterState] = None) -> List[GroupNode]:
    """
    Arrange records into an ordered group -> subgroup -> record tree.

    Records keep their given order inside each subgroup. Expansion follows the
    current selection and query:
    - a group is expanded when it is the selected group or one of its records
      matches the query;
    - a subgroup is expanded when both selections point at it or one of its
      records matches the query, and an expanded subgroup expands its group.

    Args:
        records: Records to show, usually the visible subset
        state: Current filter state (None = no selection, no query)

    Returns:
        Group nodes in case-insensitive label order
    """
    state = state or FilterState()
    selected_group = selection_key(state.group, UNGROUPED_LABEL)
    selected_subgroup = selection_key(state.subgroup, NO_SUBGROUP_LABEL)
    by_id = {record.id: record for record in records}
    index = build_index(records)
    tree: List[GroupNode] = []

    for group in group_labels(index):
        group_expanded = selected_group is not None and group == selected_group
        all_in_group = [by_id[rid] for ids in index[group].values() for rid in ids]
        if not group_expanded and _matches_query(all_in_group, state.query):
            group_expanded = True

        subgroup_nodes: List[SubgroupNode] = []
        for subgroup in subgroup_labels(index, group):
            items = [by_id[rid] for rid in index[group][subgroup]]
            selected = group == selected_group and subgroup == selected_subgroup
            expanded = selected or _matches_query(items, state.query)
            if expanded:
                group_expanded = True
            subgroup_nodes.append(SubgroupNode(label=display_subgroup(subgroup), expanded=expanded, records=items))

        tree.append(GroupNode(label=display_group(group), expanded=group_expanded, subgroups=subgroup_nodes))

    return tree
