"""
Form session: the event pipeline around one record snapshot.

A FormSession is the single writer of the snapshot. Every event
(set_value, add_element, remove_element, an applied address lookup) runs
the same synchronous pipeline before returning:

    1. apply the edit to a copy of the snapshot
    2. derive computed fields (age from date of birth)
    3. reconcile repeatable groups, evaluate rules, clear hidden values,
       sync "same as applicant" addresses; repeat until stable
    4. hand changed address inputs to the enrichment service
    5. swap the new snapshot in

Readers therefore never observe a partially applied edit.

The authentication collaborator is injected. It only needs
`is_logged_in() -> bool` and `logout() -> None`.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from aflm.address import AddressEnrichmentService, AddressGroupState, AddressLookupClient, copy_applicant_address
from aflm.catalog import build_admission_form, calculate_age
from aflm.config import EngineSettings
from aflm.errors import SnapshotError, TransportError
from aflm.groups import GroupManager
from aflm.model import ActiveRuleSet, FieldType, FormDefinition, ValidationIssue
from aflm.paths import parse_path, set_value
from aflm.payload import SubmissionClient, build
from aflm.rules import settle
from aflm.validation import is_valid, validate

logger = logging.getLogger(__name__)

_MAX_PASSES = 10
_KEEP = object()


class FormSession:
    """One in-memory editing session of the admission form."""

    def __init__(
        self,
        form: Optional[FormDefinition] = None,
        settings: Optional[EngineSettings] = None,
        auth: Any = None,
        lookup_client: Optional[AddressLookupClient] = None,
        submission_client: Optional[SubmissionClient] = None,
        today: Optional[date] = None,
    ):
        self.settings = settings or EngineSettings()
        self.form = form or build_admission_form(self.settings, today)
        self.auth = auth
        self.today = today
        self.groups = GroupManager(self.form)
        self.addresses = AddressEnrichmentService(
            self.form,
            read_snapshot=lambda: self._snapshot,
            write_fields=self._apply_lookup,
            settings=self.settings,
            client=lookup_client,
        )
        self.submission_client = submission_client or SubmissionClient(self.settings)
        self._snapshot: Dict[str, Any] = {}
        self._active = ActiveRuleSet()
        self.reset()

    # -- UI boundary ---------------------------------------------------------

    @property
    def snapshot(self) -> Dict[str, Any]:
        """The current snapshot. Treat as read-only; edit through events."""
        return self._snapshot

    @property
    def active(self) -> ActiveRuleSet:
        return self._active

    def address_state(self, key: str) -> AddressGroupState:
        return self.addresses.state(key)

    def validate(self) -> List[ValidationIssue]:
        return validate(self.form, self._snapshot, self._active, self.settings, self.today)

    def is_valid(self) -> bool:
        return is_valid(self.validate())

    # -- events --------------------------------------------------------------

    def set_value(self, path: str, value: Any) -> Dict[str, Any]:
        """Set one field (top-level id or "group[i].field"); None clears it."""
        self._check_path(path)
        self._commit(set_value(self._snapshot, path, value))
        return self._snapshot

    def add_element(self, group: str, element: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._commit(self.groups.add_element(self._snapshot, group, element))
        return self._snapshot

    def remove_element(self, group: str, index: int) -> Dict[str, Any]:
        self._commit(self.groups.remove_element(self._snapshot, group, index))
        return self._snapshot

    def reset(self) -> None:
        """Start over from the catalog defaults."""
        initial = {fd.id: fd.default for fd in self.form.fields if fd.default is not None}
        self._commit(initial, previous=None)

    # -- submission ----------------------------------------------------------

    def build_payload(self) -> Dict[str, Any]:
        return build(self.form, self._snapshot, self.settings, self.today)

    def submit(self) -> Dict[str, Any]:
        """
        Validate, build and post the payload.

        The snapshot is discarded after a successful submission. A
        rejected submission leaves it untouched.

        Raises:
            TransportError: not logged in, or the submission failed.
            SubmissionBlockedError: the snapshot has validation errors.
        """
        if self.auth is not None and not self.auth.is_logged_in():
            raise TransportError("You must be logged in to submit the application.")
        payload = self.build_payload()
        try:
            response = self.submission_client.submit(payload)
        except TransportError as e:
            if e.status_code == 401 and self.auth is not None:
                self.auth.logout()
            raise
        self.reset()
        return response

    # -- pipeline ------------------------------------------------------------

    def _check_path(self, path: str) -> None:
        fp = parse_path(path)
        if fp.is_element:
            group = self.form.get_group(fp.group)
            if group is None or group.get_field(fp.field) is None:
                raise SnapshotError(f"Unknown field path: {path}")
            return
        fd = self.form.get_field(fp.field)
        if fd is None:
            raise SnapshotError(f"Unknown field: {path}")
        if fd.field_type == FieldType.GROUP:
            raise SnapshotError(f"{path} is a repeatable group; use add_element/remove_element")

    def _apply_lookup(self, updates: Dict[str, Any]) -> None:
        snapshot = self._snapshot
        for path, value in updates.items():
            snapshot = set_value(snapshot, path, value)
        self._commit(snapshot)

    def _derive(self, snapshot: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        dob = snapshot.get("date_of_birth")
        if previous is not None and dob == previous.get("date_of_birth"):
            return snapshot
        age = calculate_age(dob, self.today)
        if age != snapshot.get("age"):
            snapshot = set_value(snapshot, "age", age)
        return snapshot

    def _stabilize(self, snapshot: Dict[str, Any], previous: Optional[Dict[str, Any]]):
        active = self._active
        for _ in range(_MAX_PASSES):
            start = snapshot
            snapshot = self.groups.reconcile_all(snapshot)
            snapshot, active = settle(self.form, snapshot)
            snapshot = copy_applicant_address(self.form, snapshot, previous)
            if snapshot is start:
                return snapshot, active
        logger.warning("Snapshot did not stabilize after %d passes", _MAX_PASSES)
        return snapshot, active

    def _commit(self, snapshot: Dict[str, Any], previous: Any = _KEEP) -> None:
        if previous is _KEEP:
            previous = self._snapshot
        snapshot = self._derive(snapshot, previous)
        snapshot, active = self._stabilize(snapshot, previous)

        updates = self.addresses.on_change(previous, snapshot)
        if updates:
            for path, value in updates.items():
                snapshot = set_value(snapshot, path, value)
            snapshot, active = self._stabilize(snapshot, previous)

        self._snapshot, self._active = snapshot, active
