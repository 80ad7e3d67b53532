"""
Tests for the Validation Result Aggregator.

Tests verify that validation:
    - Checks each field's static constraints (Phase 1)
    - Expands the active rule set into required-field issues
    - Runs the ordered cross-field checks (Phase 2)
    - Produces a deterministic issue list
"""

import pytest

from aflm.config import EngineSettings
from aflm.model import (
    Attachment,
    FieldDefinition,
    FieldType,
    FormDefinition,
    IssueKind,
    RepeatableGroup,
    Severity,
)
from aflm.session import FormSession
from aflm.validation import check_field, is_e164_phone, is_valid, validate

from conftest import TODAY, attachment, fill_valid


def issues_at(issues, path):
    return [i for i in issues if i.field_path == path]


class TestCheckField:
    """Phase 1 on single values."""

    settings = EngineSettings()

    def check(self, fd, value):
        return check_field(fd, value, self.settings, TODAY)

    def test_required_blank(self):
        issue = self.check(FieldDefinition("first_name", FieldType.TEXT, "First Name", required=True), "  ")
        assert issue.kind == IssueKind.REQUIRED
        assert issue.message == "First Name is required."

    def test_optional_blank(self):
        assert self.check(FieldDefinition("middle_name", FieldType.TEXT), "") is None

    def test_pattern(self):
        fd = FieldDefinition("aadhaar_number", FieldType.TEXT, "Aadhaar Number", pattern=r"\d{12}")
        assert self.check(fd, "123412341234") is None
        assert self.check(fd, "1234 1234 1234").message == "Invalid Aadhaar Number format."

    def test_max_length(self):
        fd = FieldDefinition("remarks", FieldType.TEXT, max_length=200)
        assert self.check(fd, "x" * 201).message == "Maximum 200 characters allowed."

    def test_number_bounds(self):
        fd = FieldDefinition("age", FieldType.NUMBER, "Age", min_value=0, max_value=100, integer_only=True)
        assert self.check(fd, 10) is None
        assert self.check(fd, "10") is None
        assert self.check(fd, 101) is not None
        assert self.check(fd, 9.5) is not None
        assert self.check(fd, True) is not None

    @pytest.mark.parametrize("typed", ["inf", "-inf", "nan", "1e400", float("inf")])
    def test_non_finite_number(self, typed):
        """Values float() accepts but no form can hold are format errors."""
        fd = FieldDefinition("age", FieldType.NUMBER, "Age", min_value=0, max_value=100, integer_only=True)
        issue = self.check(fd, typed)
        assert issue.kind == IssueKind.FORMAT
        assert issue.message == "Age must be a number."

    def test_date(self):
        fd = FieldDefinition("date_of_birth", FieldType.DATE, "Date of Birth", past_only=True)
        assert self.check(fd, "2014-06-15") is None
        assert self.check(fd, "15/06/2014").message == "Invalid date format (YYYY-MM-DD)"
        assert self.check(fd, TODAY.isoformat()) is not None

    def test_enum(self):
        fd = FieldDefinition("gender", FieldType.ENUM, "Gender", options=("Male", "Female", "Other"))
        assert self.check(fd, "Other") is None
        assert self.check(fd, "other") is not None

    def test_email(self):
        fd = FieldDefinition("billing_email", FieldType.EMAIL)
        assert self.check(fd, "ravi.kumar@gmail.com") is None
        assert self.check(fd, "ravi.kumar@").message == "Invalid email format."

    def test_attachment_limits(self):
        fd = FieldDefinition("recent_photograph", FieldType.ATTACHMENT)
        assert self.check(fd, attachment()) is None
        big = Attachment("big.jpg", b"0" * (5 * 1024 * 1024 + 1), "image/jpeg")
        assert self.check(fd, big).message == "File size should be less than 5MB."
        assert self.check(fd, Attachment("a.gif", b"GIF89a", "image/gif")).message.startswith("Invalid file type")
        assert self.check(fd, "photo.jpg") is not None


@pytest.mark.parametrize("value, expected", [
    ("+16502530000", True),
    ("6502530000", False),
    ("+1", False),
    ("", False),
    (None, False),
])
def test_e164_phone(value, expected):
    assert is_e164_phone(value) is expected


class TestConditionalRequired:
    def test_other_gender_required_then_cleared(self, form):
        issues = validate(form, {"gender": "Other"}, today=TODAY)
        required = issues_at(issues, "other_gender")
        assert len(required) == 1
        assert required[0].kind == IssueKind.REQUIRED
        assert required[0].message == "Other Gender is required."

        issues = validate(form, {"gender": "Other", "other_gender": "Non-binary"}, today=TODAY)
        assert issues_at(issues, "other_gender") == []

    def test_hidden_field_not_required(self, form):
        issues = validate(form, {"gender": "Male"}, today=TODAY)
        assert issues_at(issues, "other_gender") == []

    def test_element_rule(self, form):
        snapshot = {"languages_known": [{"language": "Other", "proficiency": "Basic"}]}
        issues = validate(form, snapshot, today=TODAY)
        assert [i.kind for i in issues_at(issues, "languages_known[0].other_language_name")] == [IssueKind.REQUIRED]


class TestCrossFieldChecks:
    def test_duplicate_parent_relation(self, form):
        """Father/Father: exactly one consistency issue, on the second parent."""
        snapshot = {"students_parents": [{"parent_relation": "Father"}, {"parent_relation": "Father"}]}
        issues = validate(form, snapshot, today=TODAY)
        consistency = [i for i in issues if i.kind == IssueKind.CONSISTENCY]
        assert len(consistency) == 1
        assert consistency[0].field_path == "students_parents[1].parent_relation"
        assert consistency[0].message == "Parent relations must be unique (e.g., one Father, one Mother)."

    def test_distinct_parent_relations(self, form):
        snapshot = {"students_parents": [{"parent_relation": "Father"}, {"parent_relation": "Mother"}]}
        issues = validate(form, snapshot, today=TODAY)
        assert not [i for i in issues if i.kind == IssueKind.CONSISTENCY]

    def test_unique_message_comes_from_group(self):
        languages = RepeatableGroup(
            name="languages_known",
            element_fields=[FieldDefinition("language", FieldType.ENUM, "Language", options=("Tamil", "Hindi"))],
            unique_field="language",
        )
        small = FormDefinition(name="Languages", fields=[FieldDefinition("languages_known", FieldType.GROUP)],
                               groups=[languages])
        snapshot = {"languages_known": [{"language": "Tamil"}, {"language": "Tamil"}]}
        assert issues_at(validate(small, snapshot, today=TODAY), "languages_known[1].language")[0].message == (
            "Language must be unique."
        )

        languages.unique_message = "Each language can be listed once."
        assert issues_at(validate(small, snapshot, today=TODAY), "languages_known[1].language")[0].message == (
            "Each language can be listed once."
        )

    def test_missing_parents_and_languages(self, form):
        issues = validate(form, {}, today=TODAY)
        assert issues_at(issues, "students_parents")[0].message == (
            "At least one parent's details (Father/Mother) are required."
        )
        assert issues_at(issues, "languages_known")[0].kind == IssueKind.REQUIRED

    def test_sibling_yes_without_elements(self, form):
        issues = validate(form, {"has_sibling_in_ihs": "Yes", "student_siblings": []}, today=TODAY)
        assert issues_at(issues, "student_siblings")[0].message == (
            "Please provide details for at least one sibling."
        )

    def test_passport_expiry_before_issue(self, form):
        snapshot = {"id_proof": "Passport", "date_of_issue": "2020-01-01", "date_of_expiry": "2019-01-01"}
        issues = validate(form, snapshot, today=TODAY)
        assert issues_at(issues, "date_of_expiry")[0].kind == IssueKind.CONSISTENCY

    def test_passport_check_gated(self, form):
        snapshot = {"id_proof": "Aadhaar Card", "date_of_issue": "2020-01-01", "date_of_expiry": "2019-01-01"}
        issues = validate(form, snapshot, today=TODAY)
        assert not [i for i in issues_at(issues, "date_of_expiry") if i.kind == IssueKind.CONSISTENCY]

    def test_previous_school_year_range(self, form):
        snapshot = {
            "been_to_school_previously": "Yes",
            "previous_schools": [{"prev_school_from_year": 2020, "prev_school_to_year": 2018,
                                  "prev_school_from_class": "Class III", "prev_school_to_class": "Class I"}],
        }
        issues = validate(form, snapshot, today=TODAY)
        kinds = {i.field_path: i.kind for i in issues if i.kind == IssueKind.CONSISTENCY}
        assert kinds == {
            "previous_schools[0].prev_school_to_year": IssueKind.CONSISTENCY,
            "previous_schools[0].prev_school_to_class": IssueKind.CONSISTENCY,
        }

    def test_declaration_must_be_accepted(self, form):
        issues = validate(form, {"declaration": False}, today=TODAY)
        assert issues_at(issues, "declaration")[0].message == "Please agree to the declaration."

    def test_age_mismatch_is_warning(self, form):
        issues = validate(form, {"date_of_birth": "2014-06-15", "age": 12}, today=TODAY)
        age = issues_at(issues, "age")
        assert len(age) == 1
        assert age[0].severity == Severity.WARNING


class TestWholeForm:
    def test_empty_snapshot_is_invalid(self, form):
        assert not is_valid(validate(form, {}, today=TODAY))

    def test_filled_session_is_valid(self, settings):
        session = fill_valid(FormSession(settings=settings, today=TODAY))
        assert session.validate() == []
        assert session.is_valid()

    @pytest.mark.parametrize("typed", ["inf", "nan", "1e400"])
    def test_non_finite_age_is_reported(self, settings, typed):
        session = fill_valid(FormSession(settings=settings, today=TODAY))
        session.set_value("age", typed)
        issues = session.validate()
        assert [i.message for i in issues_at(issues, "age")] == ["Age must be a number."]
        assert not session.is_valid()

    def test_non_finite_school_years_skip_range_check(self, form):
        snapshot = {
            "been_to_school_previously": "Yes",
            "previous_schools": [{"prev_school_from_year": "inf", "prev_school_to_year": "2018"}],
        }
        issues = validate(form, snapshot, today=TODAY)
        assert issues_at(issues, "previous_schools[0].prev_school_from_year")[0].kind == IssueKind.FORMAT
        assert not [i for i in issues_at(issues, "previous_schools[0].prev_school_to_year")
                    if i.kind == IssueKind.CONSISTENCY]

    def test_order_is_deterministic(self, form):
        snapshot = {"gender": "Other", "students_parents": [{"parent_relation": "Father"}] * 2}
        first = validate(form, snapshot, today=TODAY)
        second = validate(form, snapshot, today=TODAY)
        assert first == second
        paths = [i.field_path for i in first]
        # Field checks first, then conditional requirements, then consistency.
        assert paths.index("first_name") < paths.index("other_gender")
        assert paths.index("other_gender") < paths.index("students_parents[1].parent_relation")
