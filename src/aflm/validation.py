"""
Validation Result Aggregator.

Two phases, both always run to completion:

    Phase 1 (format)
        Every catalog field present in the snapshot is checked against its
        static constraints, in catalog order. Group fields are expanded in
        place: each element is checked against the element schema.

    Phase 2 (cross-field)
        An ordered list of CrossFieldCheck objects. Each one is gated by
        its own condition and reports against one target path. The first
        check expands the active rule set into conditional required-field
        issues; the rest are the form's consistency rules.

The returned issue list is deterministic: Phase 1 in catalog order, then
Phase 2 in check declaration order.
"""

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import phonenumbers
from email_validator import EmailNotValidError, validate_email

from aflm.catalog import CLASS_LEVELS, calculate_age
from aflm.config import EngineSettings
from aflm.model import (
    ActiveRuleSet,
    Attachment,
    FieldDefinition,
    FieldType,
    FormDefinition,
    IssueKind,
    Severity,
    ValidationIssue,
)
from aflm.paths import element_path, is_blank
from aflm.rules import evaluate


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # inf, nan and overflowed literals are not numbers a form can hold
        return value if math.isfinite(value) else None
    return None


# ---------------------------------------------------------------------------
# Phase 1
# ---------------------------------------------------------------------------

def check_field(fd: FieldDefinition, value: Any, settings: EngineSettings,
                today: date) -> Optional[ValidationIssue]:
    """
    First static-constraint violation of one value, or None.

    The returned issue carries the field id as its path; callers re-target
    it for element fields.
    """
    def fail(message: str, kind: IssueKind = IssueKind.FORMAT) -> ValidationIssue:
        return ValidationIssue(fd.id, message, kind)

    label = fd.label or fd.id
    if is_blank(value):
        if fd.required and fd.field_type != FieldType.GROUP:
            return fail(f"{label} is required.", IssueKind.REQUIRED)
        return None

    t = fd.field_type
    if t == FieldType.TEXT:
        if not isinstance(value, str):
            return fail(f"{label} must be text.")
        if fd.pattern and not re.fullmatch(fd.pattern, value):
            return fail(f"Invalid {label} format.")
        if fd.min_length is not None and len(value) < fd.min_length:
            return fail(f"Minimum {fd.min_length} characters required.")
        if fd.max_length is not None and len(value) > fd.max_length:
            return fail(f"Maximum {fd.max_length} characters allowed.")

    elif t == FieldType.NUMBER:
        number = _as_number(value)
        if number is None:
            return fail(f"{label} must be a number.")
        if fd.integer_only and number != int(number):
            return fail(f"{label} must be a whole number.")
        if fd.min_value is not None and number < fd.min_value:
            return fail(f"{label} must be {fd.min_value:g} or more.")
        if fd.max_value is not None and number > fd.max_value:
            return fail(f"{label} must be {fd.max_value:g} or less.")

    elif t == FieldType.DATE:
        parsed = parse_date(value)
        if parsed is None:
            return fail("Invalid date format (YYYY-MM-DD)")
        if fd.past_only and parsed >= today:
            return fail(f"{label} must be in the past.")

    elif t == FieldType.ENUM:
        if value not in fd.options:
            return fail(f"Invalid selection for {label}.")

    elif t == FieldType.BOOLEAN:
        if not isinstance(value, bool):
            return fail(f"{label} must be true or false.")

    elif t == FieldType.EMAIL:
        try:
            validate_email(str(value), check_deliverability=False)
        except EmailNotValidError:
            return fail("Invalid email format.")

    elif t == FieldType.PHONE:
        if not is_e164_phone(value):
            return fail("Invalid phone number format. Please include country code.")

    elif t == FieldType.ATTACHMENT:
        if not isinstance(value, Attachment):
            return fail(f"{label} must be an uploaded file.")
        if value.size > settings.max_file_size_bytes:
            return fail(f"File size should be less than {settings.max_file_size_mb:g}MB.")
        if value.content_type not in settings.accepted_file_types:
            return fail(f"Invalid file type. Accepted: {', '.join(settings.accepted_file_types)}.")

    elif t == FieldType.GROUP:
        if not isinstance(value, list):
            return fail(f"{label} must be a list.")

    return None


def is_e164_phone(value: Any) -> bool:
    """True for a valid number written in E.164 form (leading "+", country code)."""
    if not isinstance(value, str) or not value.startswith("+"):
        return False
    try:
        number = phonenumbers.parse(value, None)
    except phonenumbers.NumberParseException:
        return False
    return phonenumbers.is_valid_number(number)


def _retarget(issue: ValidationIssue, path: str) -> ValidationIssue:
    return ValidationIssue(path, issue.message, issue.kind, issue.severity)


def format_issues(form: FormDefinition, snapshot: Mapping[str, Any],
                  settings: Optional[EngineSettings] = None,
                  today: Optional[date] = None) -> List[ValidationIssue]:
    """Phase 1 over the whole snapshot, group elements included."""
    settings = settings or EngineSettings()
    today = today or date.today()
    issues: List[ValidationIssue] = []

    for fd in form.fields:
        value = snapshot.get(fd.id)
        issue = check_field(fd, value, settings, today)
        if issue is not None:
            issues.append(issue)
            continue
        group = form.get_group(fd.id) if fd.field_type == FieldType.GROUP else None
        if group is None:
            continue
        for index, element in enumerate(value or []):
            for efd in group.element_fields:
                issue = check_field(efd, element.get(efd.id), settings, today)
                if issue is not None:
                    issues.append(_retarget(issue, element_path(group.name, index, efd.id)))
    return issues


# ---------------------------------------------------------------------------
# Phase 2
# ---------------------------------------------------------------------------

Context = Dict[str, Any]


@dataclass(frozen=True)
class CrossFieldCheck:
    """
    One ordered cross-field check.

    applies:
        Governing condition; the check is skipped when it returns False.

    run:
        Returns the issues found (usually zero or one). Receives the
        evaluation context: form, snapshot, active rule set, today.
    """

    name: str
    applies: Callable[[Context], bool]
    run: Callable[[Context], List[ValidationIssue]]


def _always(ctx: Context) -> bool:
    return True


def _label(form: FormDefinition, field_id: str, group_name: Optional[str] = None) -> str:
    fd = None
    if group_name:
        group = form.get_group(group_name)
        fd = group.get_field(field_id) if group else None
    fd = fd or form.get_field(field_id)
    return (fd.label if fd and fd.label else field_id)


def _conditional_required(ctx: Context) -> List[ValidationIssue]:
    """Blank fields the active rule set requires, in rule table order."""
    form, snapshot, active = ctx["form"], ctx["snapshot"], ctx["active"]
    issues: List[ValidationIssue] = []
    seen = set()

    def require(path: str, value: Any, label: str) -> None:
        if path in seen or not active.is_required(path) or not is_blank(value):
            return
        seen.add(path)
        issues.append(ValidationIssue(path, f"{label} is required.", IssueKind.REQUIRED))

    for rule in form.rules:
        for fid in rule.field_ids():
            require(fid, snapshot.get(fid), _label(form, fid))
    for group in form.groups:
        for index, element in enumerate(snapshot.get(group.name) or []):
            for rule in group.element_rules:
                for fid in rule.field_ids():
                    require(element_path(group.name, index, fid), element.get(fid),
                            _label(form, fid, group.name))
    return issues


def _group_cardinality(ctx: Context) -> List[ValidationIssue]:
    form, snapshot = ctx["form"], ctx["snapshot"]
    issues: List[ValidationIssue] = []
    for group in form.groups:
        count = len(snapshot.get(group.name) or [])
        label = group.label or group.name
        if group.is_trigger_bound:
            if snapshot.get(group.trigger_field) == group.populate_value and count == 0:
                issues.append(ValidationIssue(group.name, group.min_items_message or f"{label} needs an entry.",
                                              IssueKind.REQUIRED))
            continue
        if count < group.min_items:
            issues.append(ValidationIssue(group.name, group.min_items_message or
                                          f"{label} needs at least {group.min_items} entries.",
                                          IssueKind.REQUIRED))
        elif group.max_items is not None and count > group.max_items:
            issues.append(ValidationIssue(group.name, f"A maximum of {group.max_items} {label} entries are allowed.",
                                          IssueKind.CONSISTENCY))
    return issues


def _unique_members(ctx: Context) -> List[ValidationIssue]:
    """Each element's unique field must differ from every earlier element's."""
    form, snapshot = ctx["form"], ctx["snapshot"]
    issues: List[ValidationIssue] = []
    for group in form.groups:
        if not group.unique_field:
            continue
        seen = []
        for index, element in enumerate(snapshot.get(group.name) or []):
            value = element.get(group.unique_field)
            if is_blank(value):
                continue
            if value in seen:
                issues.append(ValidationIssue(
                    element_path(group.name, index, group.unique_field),
                    group.unique_message or f"{_label(form, group.unique_field, group.name)} must be unique.",
                    IssueKind.CONSISTENCY,
                ))
            seen.append(value)
    return issues


def _passport_dates(ctx: Context) -> List[ValidationIssue]:
    snapshot = ctx["snapshot"]
    issued = parse_date(snapshot.get("date_of_issue"))
    expires = parse_date(snapshot.get("date_of_expiry"))
    if issued and expires and expires <= issued:
        return [ValidationIssue("date_of_expiry", "Date of Expiry must be after Date of Issue.",
                                IssueKind.CONSISTENCY)]
    return []


def _previous_school_ranges(ctx: Context) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for index, school in enumerate(ctx["snapshot"].get("previous_schools") or []):
        from_year = _as_number(school.get("prev_school_from_year"))
        to_year = _as_number(school.get("prev_school_to_year"))
        if from_year is not None and to_year is not None and to_year < from_year:
            issues.append(ValidationIssue(
                element_path("previous_schools", index, "prev_school_to_year"),
                "To Year must be greater than or equal to From Year.", IssueKind.CONSISTENCY))
        from_class = school.get("prev_school_from_class")
        to_class = school.get("prev_school_to_class")
        if from_class in CLASS_LEVELS and to_class in CLASS_LEVELS:
            if CLASS_LEVELS.index(to_class) < CLASS_LEVELS.index(from_class):
                issues.append(ValidationIssue(
                    element_path("previous_schools", index, "prev_school_to_class"),
                    "To Class must be the same as or later than From Class.", IssueKind.CONSISTENCY))
    return issues


def _declaration(ctx: Context) -> List[ValidationIssue]:
    if ctx["snapshot"].get("declaration") is False:
        return [ValidationIssue("declaration", "Please agree to the declaration.", IssueKind.REQUIRED)]
    return []


def _age_matches_birth_date(ctx: Context) -> List[ValidationIssue]:
    snapshot = ctx["snapshot"]
    expected = calculate_age(snapshot.get("date_of_birth"), ctx["today"])
    age = _as_number(snapshot.get("age"))
    if expected is not None and age is not None and age != expected:
        return [ValidationIssue("age", f"Age does not match Date of Birth (expected {expected}).",
                                IssueKind.CONSISTENCY, Severity.WARNING)]
    return []


CROSS_FIELD_CHECKS = (
    CrossFieldCheck("conditional_required", _always, _conditional_required),
    CrossFieldCheck("group_cardinality", _always, _group_cardinality),
    CrossFieldCheck("unique_members", _always, _unique_members),
    CrossFieldCheck("passport_dates", lambda ctx: ctx["snapshot"].get("id_proof") == "Passport", _passport_dates),
    CrossFieldCheck("previous_school_ranges",
                    lambda ctx: ctx["snapshot"].get("been_to_school_previously") == "Yes",
                    _previous_school_ranges),
    CrossFieldCheck("declaration", _always, _declaration),
    CrossFieldCheck("age_matches_birth_date", _always, _age_matches_birth_date),
)


def cross_field_issues(form: FormDefinition, snapshot: Mapping[str, Any], active: ActiveRuleSet,
                       checks: Iterable[CrossFieldCheck] = CROSS_FIELD_CHECKS,
                       today: Optional[date] = None) -> List[ValidationIssue]:
    """Phase 2. Every applicable check runs; none short-circuits another."""
    ctx: Context = {"form": form, "snapshot": snapshot, "active": active, "today": today or date.today()}
    issues: List[ValidationIssue] = []
    for check in checks:
        if check.applies(ctx):
            issues.extend(check.run(ctx))
    return issues


def validate(form: FormDefinition, snapshot: Mapping[str, Any], active: Optional[ActiveRuleSet] = None,
             settings: Optional[EngineSettings] = None, today: Optional[date] = None) -> List[ValidationIssue]:
    """
    Run both phases and return the complete, ordered issue list.

    `active` is computed from the snapshot when not given.
    """
    if active is None:
        active = evaluate(form, snapshot)
    return format_issues(form, snapshot, settings, today) + cross_field_issues(
        form, snapshot, active, today=today
    )


def errors_only(issues: Iterable[ValidationIssue]) -> List[ValidationIssue]:
    return [i for i in issues if i.severity == Severity.ERROR]


def is_valid(issues: Iterable[ValidationIssue]) -> bool:
    """A snapshot is submittable iff it has no ERROR issues."""
    return not errors_only(issues)
