"""
Tests for AFLM Core Model Objects

These tests verify:
    - Basic model creation
    - Retrieval methods on FormDefinition and RepeatableGroup
    - Default element construction
    - Value objects (Attachment, AddressQuery, ActiveRuleSet)
"""

import pytest
from aflm.model import (
    ActiveRuleSet,
    AddressQuery,
    Attachment,
    Consequence,
    Effect,
    FieldDefinition,
    FieldType,
    FormDefinition,
    RepeatableGroup,
    Rule,
)
from aflm.expressions import equals


def build_tiny_form() -> FormDefinition:
    return FormDefinition(
        name="Tiny",
        fields=[
            FieldDefinition("gender", FieldType.ENUM, "Gender", required=True, options=("Male", "Other")),
            FieldDefinition("other_gender", FieldType.TEXT, "Other Gender"),
            FieldDefinition("student_siblings", FieldType.GROUP, "Siblings"),
        ],
        rules=[
            Rule("gender_other", "gender", equals("gender", "Other"), [Consequence("other_gender")]),
        ],
        groups=[
            RepeatableGroup(
                name="student_siblings",
                element_fields=[
                    FieldDefinition("sibling_first_name", FieldType.TEXT),
                    FieldDefinition("sibling_is_day_scholar", FieldType.BOOLEAN, default=False),
                    FieldDefinition("sibling_age", FieldType.NUMBER),
                ],
                trigger_field="has_sibling_in_ihs",
                populate_value="Yes",
                depopulate_value="No",
            )
        ],
    )


class TestFieldDefinition:
    """Test FieldDefinition objects."""

    def test_defaults(self):
        fd = FieldDefinition("place", FieldType.TEXT)
        assert fd.required is False
        assert fd.options == ()
        assert fd.default is None

    def test_enum_options_keep_order(self):
        fd = FieldDefinition("applied_for", FieldType.ENUM, options=("Class II", "Class V"))
        assert fd.options.index("Class V") == 1


class TestConsequence:
    """Test rule consequences."""

    def test_default_effect_is_required_and_clears(self):
        c = Consequence("other_gender")
        assert c.effect == Effect.REQUIRED
        assert c.clear_on_exit is True

    def test_immutable(self):
        c = Consequence("other_gender")
        with pytest.raises(AttributeError):
            c.effect = Effect.HIDDEN


class TestFormDefinition:
    """Test FormDefinition retrieval."""

    def test_get_field(self):
        form = build_tiny_form()
        assert form.get_field("gender").field_type == FieldType.ENUM
        assert form.get_field("missing") is None

    def test_get_rule_and_group(self):
        form = build_tiny_form()
        assert form.get_rule("gender_other").trigger_field == "gender"
        assert form.get_group("student_siblings").is_trigger_bound
        assert form.get_group("nope") is None

    def test_governed_field_ids(self):
        form = build_tiny_form()
        assert form.governed_field_ids() == ["other_gender"]


class TestRepeatableGroup:
    """Test group element construction."""

    def test_default_element(self):
        """Text-like fields start empty, declared defaults are kept, numbers stay absent."""
        group = build_tiny_form().get_group("student_siblings")
        element = group.default_element()
        assert element == {"sibling_first_name": "", "sibling_is_day_scholar": False}

    def test_default_elements_are_independent(self):
        group = build_tiny_form().get_group("student_siblings")
        a = group.default_element()
        b = group.default_element()
        a["sibling_first_name"] = "Meera"
        assert b["sibling_first_name"] == ""

    def test_bounded_group_is_not_trigger_bound(self):
        group = RepeatableGroup(name="languages_known", min_items=1)
        assert not group.is_trigger_bound


def test_attachment_size():
    assert Attachment("a.pdf", b"12345", "application/pdf").size == 5


def test_address_query_tag():
    """The tag is the exact (country, postal code) pair."""
    assert AddressQuery("India", "600001").tag == ("India", "600001")
    # A hyphen in either part must not make two pairs collide
    assert AddressQuery("Guinea-Bissau", "1000").tag != AddressQuery("Guinea", "Bissau-1000").tag
    assert AddressQuery("India", "60000").tag != AddressQuery("India", "600001").tag


def test_active_rule_set_queries():
    active = ActiveRuleSet(
        required_field_ids=frozenset({"aadhaar_number"}),
        hidden_field_ids=frozenset({"passport_number"}),
    )
    assert active.is_required("aadhaar_number")
    assert active.is_hidden("passport_number")
    assert not active.is_hidden("aadhaar_number")
