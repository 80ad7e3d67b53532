"""
Core Form Model Objects

Defines the fundamental data structures of the Admission Form Logic Model.

These are plain data classes representing:
    - Fields (catalog entries with static constraints)
    - Rules (trigger condition -> consequences)
    - Repeatable groups (homogeneous sub-record lists)
    - The form definition (root container)
    - Evaluation and validation results

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about HTTP, the UI or the submission transport
        - Are mostly immutable
        - Are fully serializable (see aflm.serialization)
        - Represent structure, not behavior
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from aflm.expressions import Expression


class FieldType(Enum):
    """Primitive type of a catalog field."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    ENUM = "enum"
    BOOLEAN = "boolean"
    ATTACHMENT = "attachment"
    EMAIL = "email"
    PHONE = "phone"
    GROUP = "group"


class FieldCategory(Enum):
    """Whether a field lives on the record itself or inside group elements."""

    SCALAR = "scalar"
    GROUP_MEMBER = "group_member"


class Effect(Enum):
    """
    What a satisfied rule does to a consequence field.

    REQUIRED: visible and must be filled
    OPTIONAL: visible, may stay empty
    HIDDEN:   hidden while the condition holds
    """

    REQUIRED = "required"
    OPTIONAL = "optional"
    HIDDEN = "hidden"


class IssueKind(Enum):
    """Validation issue taxonomy. Issues are data, never exceptions."""

    FORMAT = "format"
    REQUIRED = "required"
    CONSISTENCY = "consistency"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


_TEXT_LIKE = (FieldType.TEXT, FieldType.ENUM, FieldType.EMAIL, FieldType.PHONE, FieldType.DATE)


@dataclass
class FieldDefinition:
    """
    Declares one field of the record, or of a group element.

    Properties:
        id:
            Field identifier, unique within its scope
            Examples: "gender", "aadhaar_number", "parent_relation"

        field_type:
            Primitive type driving the Phase 1 format checks

        required:
            Unconditionally required. Fields governed by a rule must
            leave this False; the rule decides.

        options:
            Enumerated values for ENUM fields (declaration order matters
            for ordinal checks such as class levels)

        pattern / min_length / max_length:
            Text constraints (pattern is a full-match regex)

        min_value / max_value / integer_only:
            NUMBER constraints

        past_only:
            DATE must be strictly before today

        default:
            Value placed in a fresh snapshot (None means absent)
    """

    id: str
    field_type: FieldType
    label: str = ""
    required: bool = False
    options: Tuple[str, ...] = ()
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    integer_only: bool = False
    past_only: bool = False
    default: Any = None
    category: FieldCategory = FieldCategory.SCALAR


@dataclass(frozen=True)
class Consequence:
    """
    One effect of a rule on one field.

    clear_on_exit:
        When the field ends up hidden its stored value is removed, so
        stale data never reaches the submission payload.
    """

    field_id: str
    effect: Effect = Effect.REQUIRED
    clear_on_exit: bool = True


@dataclass
class Rule:
    """
    A (trigger condition -> consequence) pair of the static table.

    Properties:
        id:
            Stable rule identifier, e.g. "gender_other"

        trigger_field:
            The field whose value selects the consequences. The condition
            must reference it; it may also reference other fields
            (e.g. bed_wet_frequency needs applied_for AND wets_bed).

        condition:
            Boolean Expression over the snapshot (or the group element)

        consequences:
            Fields affected while the condition holds

    ARCHITECTURAL RULE:
        Rules are independent. A rule never consults the result of
        another rule.
    """

    id: str
    trigger_field: str
    condition: Expression
    consequences: List[Consequence] = field(default_factory=list)

    def field_ids(self) -> List[str]:
        return [c.field_id for c in self.consequences]


@dataclass
class RepeatableGroup:
    """
    An ordered list of homogeneous sub-records stored under `name`.

    Properties:
        trigger_field / populate_value / depopulate_value:
            When set, the group is trigger-bound: the populate value adds
            one default element to an empty list, the depopulate value
            clears the list. None for parents and languages.

        min_items / max_items:
            Cardinality bounds (max_items None means unbounded)

        unique_field:
            Element field whose values must differ across elements
            (parents: parent_relation)

        min_items_message / unique_message:
            Messages for a group below its minimum and for a repeated
            unique value; empty means a message built from the label

        address_prefix:
            Prefix of the element's address fields when each element
            carries its own enriched address ("parent_" / "guardian_")
    """

    name: str
    label: str = ""
    element_fields: List[FieldDefinition] = field(default_factory=list)
    element_rules: List[Rule] = field(default_factory=list)
    trigger_field: Optional[str] = None
    populate_value: Optional[str] = None
    depopulate_value: Optional[str] = None
    min_items: int = 0
    max_items: Optional[int] = None
    unique_field: Optional[str] = None
    address_prefix: Optional[str] = None
    min_items_message: str = ""
    unique_message: str = ""

    @property
    def is_trigger_bound(self) -> bool:
        return self.trigger_field is not None

    def get_field(self, field_id: str) -> Optional[FieldDefinition]:
        for fd in self.element_fields:
            if fd.id == field_id:
                return fd
        return None

    def default_element(self) -> Dict[str, Any]:
        """A fresh element with every field at its declared default."""
        element: Dict[str, Any] = {}
        for fd in self.element_fields:
            if fd.default is not None:
                element[fd.id] = fd.default
            elif fd.field_type in _TEXT_LIKE:
                element[fd.id] = ""
        return element


@dataclass
class FormDefinition:
    """
    Root container for the whole admission form.

    Everything the engine does (evaluation, reconciliation, validation,
    payload building) is derived from this object and a snapshot.

    INVARIANTS:
        - Rule triggers and consequences reference declared fields
        - No two rules contradict each other on one field for one
          trigger state (checked by aflm.analyzer)
        - Every GROUP field has a matching RepeatableGroup
    """

    name: str
    fields: List[FieldDefinition] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)
    groups: List[RepeatableGroup] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    def get_field(self, field_id: str) -> Optional[FieldDefinition]:
        for fd in self.fields:
            if fd.id == field_id:
                return fd
        return None

    def get_group(self, name: str) -> Optional[RepeatableGroup]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def governed_field_ids(self) -> List[str]:
        """Fields named by at least one rule consequence, in table order."""
        seen: List[str] = []
        for rule in self.rules:
            for fid in rule.field_ids():
                if fid not in seen:
                    seen.append(fid)
        return seen


@dataclass(frozen=True)
class ActiveRuleSet:
    """
    Result of evaluating the rule table against one snapshot.

    Field ids are top-level ids or element paths like
    "students_parents[0].parent_address_city".
    """

    required_field_ids: FrozenSet[str] = frozenset()
    hidden_field_ids: FrozenSet[str] = frozenset()
    visible_field_ids: FrozenSet[str] = frozenset()

    def is_required(self, path: str) -> bool:
        return path in self.required_field_ids

    def is_hidden(self, path: str) -> bool:
        return path in self.hidden_field_ids


@dataclass(frozen=True)
class ValidationIssue:
    field_path: str
    message: str
    kind: IssueKind
    severity: Severity = Severity.ERROR


@dataclass(frozen=True)
class Attachment:
    """An uploaded file held in memory until submission."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class AddressQuery:
    """
    Inputs of one address lookup.

    The tag is derived from the exact (country, postal code) pair and is
    what a completed lookup is compared against before it may touch the
    snapshot.
    """

    country_name: str
    postal_code: str

    @property
    def tag(self) -> Tuple[str, str]:
        return (self.country_name, self.postal_code)


@dataclass(frozen=True)
class AddressResult:
    region_options: Tuple[str, ...] = ()
    city_options: Tuple[str, ...] = ()
    chosen_region: str = ""
    chosen_city: str = ""
