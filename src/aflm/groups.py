"""
Repeatable Group Manager.

Owns the lifecycle of the form's sub-record lists:

    - Trigger-bound groups (siblings, previous schools, guardians): the
      populate value appends one default element to an empty list, the
      depopulate value clears the list.
    - Bounded groups (parents [1, 2], languages [1, ∞)): user-initiated
      add/remove inside the cardinality bounds; the list is padded to its
      minimum with default elements.

ARCHITECTURAL RULE:
    reconcile() is a transition keyed on (trigger value, current length).
    Calling it again with the same pair returns the snapshot unchanged.
    Snapshots are never mutated in place.
"""

import logging
from typing import Any, Dict, List, Optional

from aflm.errors import GroupCardinalityError, SnapshotError
from aflm.model import FormDefinition, RepeatableGroup

logger = logging.getLogger(__name__)

_UNSET = object()


class GroupManager:
    """Reconciles and edits every repeatable group of one form."""

    def __init__(self, form: FormDefinition):
        self.form = form

    def _group(self, name: str) -> RepeatableGroup:
        group = self.form.get_group(name)
        if group is None:
            raise SnapshotError(f"Unknown repeatable group: {name}")
        return group

    def elements(self, snapshot: Dict[str, Any], name: str) -> List[Dict[str, Any]]:
        return list(snapshot.get(name) or [])

    def reconcile(self, snapshot: Dict[str, Any], name: str, trigger_value: Any = _UNSET) -> Dict[str, Any]:
        """
        Bring one group's list in line with its trigger value.

        trigger_value defaults to the value currently stored under the
        group's trigger field. Returns the input snapshot object when no
        change is needed.
        """
        group = self._group(name)
        elements = self.elements(snapshot, name)

        if group.is_trigger_bound:
            if trigger_value is _UNSET:
                trigger_value = snapshot.get(group.trigger_field)
            if trigger_value == group.populate_value and not elements:
                logger.debug("%s: %s=%r, adding first element", name, group.trigger_field, trigger_value)
                return self._with(snapshot, name, [group.default_element()])
            if trigger_value == group.depopulate_value and elements:
                logger.debug("%s: %s=%r, clearing %d element(s)", name, group.trigger_field,
                             trigger_value, len(elements))
                return self._with(snapshot, name, [])
            if trigger_value != group.populate_value and name not in snapshot:
                return self._with(snapshot, name, [])
            return snapshot

        if len(elements) < group.min_items:
            elements += [group.default_element() for _ in range(group.min_items - len(elements))]
            return self._with(snapshot, name, elements)
        if name not in snapshot:
            return self._with(snapshot, name, elements)
        return snapshot

    def reconcile_all(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Reconcile every group against the triggers stored in the snapshot."""
        for group in self.form.groups:
            snapshot = self.reconcile(snapshot, group.name)
        return snapshot

    def add_element(self, snapshot: Dict[str, Any], name: str,
                    element: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Append an element (a default one when `element` is None).

        Raises:
            GroupCardinalityError: the group is full, or is trigger-bound and
                its trigger is not at the populate value.
        """
        group = self._group(name)
        elements = self.elements(snapshot, name)
        if group.max_items is not None and len(elements) >= group.max_items:
            raise GroupCardinalityError(
                f"{group.label or name} allows at most {group.max_items} element(s)"
            )
        if group.is_trigger_bound and snapshot.get(group.trigger_field) != group.populate_value:
            raise GroupCardinalityError(
                f"{group.label or name} only accepts elements while "
                f"{group.trigger_field} = {group.populate_value}"
            )
        new_element = group.default_element()
        if element:
            new_element.update(element)
        return self._with(snapshot, name, elements + [new_element])

    def remove_element(self, snapshot: Dict[str, Any], name: str, index: int) -> Dict[str, Any]:
        """
        Remove the element at `index`.

        Raises:
            SnapshotError: no element at `index`.
            GroupCardinalityError: removal would go below the group minimum.
        """
        group = self._group(name)
        elements = self.elements(snapshot, name)
        if not 0 <= index < len(elements):
            raise SnapshotError(f"{name} has no element {index}")
        if len(elements) - 1 < group.min_items:
            raise GroupCardinalityError(
                f"{group.label or name} needs at least {group.min_items} element(s)"
            )
        del elements[index]
        return self._with(snapshot, name, elements)

    @staticmethod
    def _with(snapshot: Dict[str, Any], name: str, elements: List[Dict[str, Any]]) -> Dict[str, Any]:
        new = dict(snapshot)
        new[name] = elements
        return new
