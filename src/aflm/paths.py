"""
Field paths over a record snapshot.

A path is either a top-level field id ("gender") or an element path
("students_parents[1].parent_relation"). Reads never raise for a missing
value; writes are copy-on-write and return a new snapshot.
"""

import re
from typing import Any, Dict, NamedTuple, Optional

from aflm.errors import SnapshotError

_ELEMENT_PATH = re.compile(r"^(?P<group>[A-Za-z_][A-Za-z0-9_]*)\[(?P<index>\d+)\]\.(?P<field>[A-Za-z_][A-Za-z0-9_]*)$")


class FieldPath(NamedTuple):
    field: str
    group: Optional[str] = None
    index: Optional[int] = None

    @property
    def is_element(self) -> bool:
        return self.group is not None

    def __str__(self) -> str:
        if self.group is None:
            return self.field
        return element_path(self.group, self.index, self.field)


def element_path(group: str, index: int, field_id: str) -> str:
    return f"{group}[{index}].{field_id}"


def parse_path(path: str) -> FieldPath:
    match = _ELEMENT_PATH.match(path)
    if match:
        return FieldPath(field=match["field"], group=match["group"], index=int(match["index"]))
    if "[" in path or "." in path:
        raise SnapshotError(f"Malformed field path: {path!r}")
    return FieldPath(field=path)


def get_value(snapshot: Dict[str, Any], path: str) -> Any:
    """Value at `path`, or None when absent (including a missing element)."""
    fp = parse_path(path)
    if not fp.is_element:
        return snapshot.get(fp.field)
    elements = snapshot.get(fp.group) or []
    if fp.index >= len(elements):
        return None
    return elements[fp.index].get(fp.field)


def set_value(snapshot: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """
    Return a new snapshot with `path` set to `value`.

    Setting None removes the key. Only the touched element and its list
    are copied; other elements are shared with the old snapshot.
    """
    fp = parse_path(path)
    new = dict(snapshot)
    if not fp.is_element:
        if value is None:
            new.pop(fp.field, None)
        else:
            new[fp.field] = value
        return new

    elements = list(snapshot.get(fp.group) or [])
    if fp.index >= len(elements):
        raise SnapshotError(f"{fp.group} has no element {fp.index}")
    element = dict(elements[fp.index])
    if value is None:
        element.pop(fp.field, None)
    else:
        element[fp.field] = value
    elements[fp.index] = element
    new[fp.group] = elements
    return new


def is_blank(value: Any) -> bool:
    """None, empty or whitespace-only strings, and empty lists count as blank."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False
