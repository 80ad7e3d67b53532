"""
The admission form definition.

Builds the FormDefinition of the school admission form: every field of the
record, the static conditional rule table, and the five repeatable groups
(parents, guardians, siblings, previous schools, known languages) with
their element schemas and element rules.

Also holds the small calendar helpers the form depends on (academic year
labels, age from date of birth).
"""

import warnings
from datetime import date
from typing import List, Optional

from aflm.analyzer import analyze_form, find_rule_conflicts
from aflm.config import EngineSettings
from aflm.errors import RuleTableError
from aflm.expressions import all_of, equals
from aflm.model import (
    Consequence,
    Effect,
    FieldCategory,
    FieldDefinition,
    FieldType,
    FormDefinition,
    RepeatableGroup,
    Rule,
)

YES, NO = "Yes", "No"
YES_NO = (YES, NO)

APPLIED_FOR = ("Class II", "Class V", "Class VIII", "Class XI")
GENDER = ("Male", "Female", "Other")
RELIGION = ("Hindu", "Muslim", "Christian", "Sikh", "Jew", "Other")
COMMUNITY = (
    "OC", "BC", "BC-Others", "MBC", "SC-Arunthathiyar", "SC-Others",
    "DNC (Denotified Communities)", "ST", "Other",
)
ID_PROOF = ("Aadhaar Card", "Passport")
BOARD_AFFILIATION = (
    "CBSE – Central Board of Secondary Education",
    "ICSE - Indian Certificate of Secondary Education",
    "SSC - Secondary School Certificate",
    "IB - International Baccalaureate",
    "Cambridge International",
    "State Board",
    "Other",
)
BLOOD_GROUP = (
    "Blood Group A+", "Blood Group A-", "Blood Group B+", "Blood Group B-",
    "Blood Group O+", "Blood Group O-", "Blood Group AB+", "Blood Group AB-",
)
MARITAL_STATUS = ("Married", "Separated", "Divorced", "Single Parent")
FATHER_MOTHER_BOTH = ("Father", "Mother", "Both")
GROUP_A = ("Physics", "Accounts", "History")
GROUP_B = ("Chemistry", "Economics")
GROUP_C = ("Biology", "Computer Science", "Commerce", "Political Science")
GROUP_D = ("Mathematics", "Environmental Studies", "Fine Arts")
PARENT_RELATION = ("Father", "Mother")
EDUCATION_LEVEL = (
    "Class VIII or below", "SSLC/ PUC", "Higher Secondary", "Graduate",
    "Post-Graduate", "M. Phil", "PhD", "Post-Doctoral",
)
PROFESSION = (
    "Academia-Professors, Research Scholars, Scientists",
    "Arts, Music, Entertainment",
    "Architecture and Construction",
    "Agriculture",
    "Armed Forces",
    "Banking and Finance and Financial Services",
    "Businessman/ Entrepreneur",
    "Education and Training",
    "Information Technology",
    "Healthcare",
    "Others",
)
GUARDIAN_RELATION = ("Grand Father", "Grand Mother", "Sibling", "Uncle", "Aunt", "Family Friend", "Other")
LANGUAGES = ("English", "Tamil", "Hindi", "French", "German", "Spanish", "Arabic", "Mandarin", "Japanese", "Other")
PROFICIENCY = ("Native", "Advanced", "Intermediate", "Basic")
CLASS_LEVELS = (
    "LKG", "UKG", "Class I", "Class II", "Class III", "Class IV", "Class V", "Class VI",
    "Class VII", "Class VIII", "Class IX", "Class X", "Class XI", "Class XII",
)

VACCINES = (
    "smallpox", "hepatitis_a", "hepatitis_b", "tdap", "typhoid",
    "measles", "polio", "mumps", "rubella", "varicella",
)

# Yes/No health trigger -> details field(s) it gates.
HEALTH_TRIGGERS = (
    ("has_hearing_challenges", ("hearing_challenges",)),
    ("has_behavioural_challenges", ("behavioural_challenges",)),
    ("has_physical_challenges", ("physical_challenges",)),
    ("has_speech_challenges", ("speech_challenges",)),
    ("has_injury", ("injury_details",)),
    ("on_medication", ("medication_details", "medical_prescription")),
    ("has_health_issue", ("health_issue_details",)),
    ("was_hospitalized", ("hospitalization_details",)),
    ("needs_special_attention", ("attention_details",)),
    ("has_allergies", ("allergy_details",)),
)

DIVORCE_FIELDS = (
    "who_is_responsible_for_paying_applicants_tuition_fee",
    "court_order_document",
    "who_is_allowed_to_receive_school_communication",
    "legal_rights_document",
    "who_is_allowed_to_receive_report_cards",
    "visit_rights",
)

QUESTIONNAIRE_FIELDS = tuple(f"q{i}_applicant_response" for i in range(1, 8)) + tuple(
    f"q{i}_parent_response" for i in range(1, 7)
)

POSTAL_CODE_PATTERN = r"[a-zA-Z0-9\s-]{3,20}"


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

def academic_year_label(start_year: int) -> str:
    """2024 -> "2024-25"."""
    return f"{start_year}-{str(start_year + 1)[-2:]}"


def current_academic_year(today: Optional[date] = None) -> str:
    today = today or date.today()
    return academic_year_label(today.year)


def last_academic_years(count: int, today: Optional[date] = None) -> List[str]:
    """The current academic year and the ones before it, newest first."""
    today = today or date.today()
    return [academic_year_label(today.year - i) for i in range(count)]


def calculate_age(date_of_birth, today: Optional[date] = None) -> Optional[int]:
    """
    Whole years between date_of_birth and today.

    Accepts a date or an ISO "YYYY-MM-DD" string. Returns None for blank or
    unparsable input and for dates in the future.
    """
    if isinstance(date_of_birth, str):
        try:
            date_of_birth = date.fromisoformat(date_of_birth.strip())
        except ValueError:
            return None
    if not isinstance(date_of_birth, date):
        return None
    today = today or date.today()
    if date_of_birth > today:
        return None
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


# ---------------------------------------------------------------------------
# Field constructors
# ---------------------------------------------------------------------------

def _text(fid, label, required=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.TEXT, label=label, required=required, **kw)


def _enum(fid, label, options, required=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.ENUM, label=label, required=required,
                           options=tuple(options), **kw)


def _yes_no(fid, label, required=True, **kw) -> FieldDefinition:
    return _enum(fid, label, YES_NO, required=required, **kw)


def _date(fid, label, required=False, past_only=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.DATE, label=label, required=required,
                           past_only=past_only, **kw)


def _file(fid, label, required=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.ATTACHMENT, label=label, required=required, **kw)


def _email(fid, label, required=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.EMAIL, label=label, required=required, **kw)


def _phone(fid, label, required=False, **kw) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.PHONE, label=label, required=required, **kw)


def _group_field(fid, label) -> FieldDefinition:
    return FieldDefinition(id=fid, field_type=FieldType.GROUP, label=label)


def _member(fd: FieldDefinition) -> FieldDefinition:
    fd.category = FieldCategory.GROUP_MEMBER
    return fd


def _requires(rule_id, trigger, condition, required=(), optional=(), clear_on_exit=True) -> Rule:
    consequences = [Consequence(fid, Effect.REQUIRED, clear_on_exit) for fid in required]
    consequences += [Consequence(fid, Effect.OPTIONAL, clear_on_exit) for fid in optional]
    return Rule(id=rule_id, trigger_field=trigger, condition=condition, consequences=consequences)


# ---------------------------------------------------------------------------
# Repeatable groups
# ---------------------------------------------------------------------------

def _person_address_fields(prefix: str) -> List[FieldDefinition]:
    return [
        _yes_no(f"{prefix}is_address_same_as_applicant", "Address same as applicant", default=YES),
        _text(f"{prefix}address_country", "Address Country"),
        _text(f"{prefix}address_zipcode", "Address Zipcode", pattern=POSTAL_CODE_PATTERN),
        _text(f"{prefix}address_state", "Address State"),
        _text(f"{prefix}address_city", "Address City"),
        _text(f"{prefix}address_line1", "Address Line 1"),
        _text(f"{prefix}address_line2", "Address Line 2"),
    ]


def _person_rules(prefix: str) -> List[Rule]:
    """WhatsApp number and own-address rules shared by parents and guardians."""
    return [
        _requires(
            f"{prefix}whatsapp_differs",
            f"{prefix}is_whatsapp_same",
            equals(f"{prefix}is_whatsapp_same", False),
            required=[f"{prefix}whatsapp_number"],
        ),
        # Copied address values stay in the element while hidden.
        _requires(
            f"{prefix}own_address",
            f"{prefix}is_address_same_as_applicant",
            equals(f"{prefix}is_address_same_as_applicant", NO),
            required=[
                f"{prefix}address_country",
                f"{prefix}address_zipcode",
                f"{prefix}address_state",
                f"{prefix}address_city",
                f"{prefix}address_line1",
            ],
            optional=[f"{prefix}address_line2"],
            clear_on_exit=False,
        ),
    ]


def _parents_group() -> RepeatableGroup:
    p = "parent_"
    element_fields = [
        _text("parent_first_name", "Parent's First Name", required=True),
        _text("parent_last_name", "Parent's Last Name", required=True),
        _enum("parent_relation", "Parent's Relation", PARENT_RELATION, required=True),
        _text("parent_nationality", "Parent's Nationality", required=True),
        _text("parent_country_of_residence", "Parent's Country of Residence", required=True),
        _email("parent_contact_email", "Parent's Contact Email", required=True),
        _phone("parent_contact_phone", "Parent's Contact Phone", required=True),
        FieldDefinition("parent_is_whatsapp_same", FieldType.BOOLEAN, "WhatsApp same as phone", default=True),
        _phone("parent_whatsapp_number", "WhatsApp Number"),
        *_person_address_fields(p),
        _enum("parent_education", "Parent's Education", EDUCATION_LEVEL, required=True),
        _text("parent_field_of_study", "Field of Study", required=True),
        _enum("parent_profession", "Parent's Profession", PROFESSION, required=True),
        _text("parent_organization_name", "Organization Name", required=True),
        _text("parent_designation", "Designation", required=True),
        _text("parent_annual_income", "Annual Income", required=True, pattern=r"\d+"),
    ]
    return RepeatableGroup(
        name="students_parents",
        label="Parents",
        element_fields=[_member(fd) for fd in element_fields],
        element_rules=_person_rules(p),
        min_items=1,
        max_items=2,
        unique_field="parent_relation",
        address_prefix=p,
        min_items_message="At least one parent's details (Father/Mother) are required.",
        unique_message="Parent relations must be unique (e.g., one Father, one Mother).",
    )


def _guardians_group() -> RepeatableGroup:
    p = "guardian_"
    element_fields = [
        _enum("guardian_relation_with_applicant", "Guardian's Relation with Applicant",
              GUARDIAN_RELATION, required=True),
        _text("guardian_first_name", "Guardian's First Name", required=True),
        _text("guardian_last_name", "Guardian's Last Name", required=True),
        _text("guardian_nationality", "Guardian's Nationality", required=True),
        _text("guardian_country_of_residence", "Guardian's Country of Residence", required=True),
        _email("guardian_contact_email", "Guardian's Contact Email", required=True),
        _phone("guardian_contact_phone", "Guardian's Contact Phone", required=True),
        FieldDefinition("guardian_is_whatsapp_same", FieldType.BOOLEAN, "WhatsApp same as phone", default=True),
        _phone("guardian_whatsapp_number", "Guardian's WhatsApp Number"),
        *_person_address_fields(p),
        _enum("guardian_education", "Guardian's Education", EDUCATION_LEVEL, required=True),
        _text("guardian_field_of_study", "Field of Study", required=True),
    ]
    return RepeatableGroup(
        name="student_guardians",
        label="Local Guardians",
        element_fields=[_member(fd) for fd in element_fields],
        element_rules=_person_rules(p),
        trigger_field="parents_are_local_guardians",
        populate_value=NO,
        depopulate_value=YES,
        address_prefix=p,
        min_items_message="Please provide local guardian details.",
    )


def _siblings_group() -> RepeatableGroup:
    element_fields = [
        _text("sibling_first_name", "Sibling's First Name", required=True),
        _text("sibling_last_name", "Sibling's Last Name", required=True),
        _text("sibling_roll_number", "Sibling's Roll Number", required=True),
        _date("sibling_date_of_birth", "Sibling's Date of Birth", required=True, past_only=True),
        _enum("sibling_gender", "Sibling's Gender", GENDER, required=True),
    ]
    return RepeatableGroup(
        name="student_siblings",
        label="Siblings in IHS",
        element_fields=[_member(fd) for fd in element_fields],
        trigger_field="has_sibling_in_ihs",
        populate_value=YES,
        depopulate_value=NO,
        min_items_message="Please provide details for at least one sibling.",
    )


def _previous_schools_group(today: date) -> RepeatableGroup:
    year_bounds = dict(min_value=1980, max_value=today.year, integer_only=True)
    element_fields = [
        _text("prev_school_name", "School Name", required=True),
        _enum("prev_school_board_affiliation", "Board Affiliation", BOARD_AFFILIATION, required=True),
        _text("prev_school_other_board_affiliation", "Other Board Affiliation"),
        FieldDefinition("prev_school_from_year", FieldType.NUMBER, "From Year", required=True, **year_bounds),
        FieldDefinition("prev_school_to_year", FieldType.NUMBER, "To Year", required=True, **year_bounds),
        _enum("prev_school_from_class", "From Class", CLASS_LEVELS, required=True),
        _enum("prev_school_to_class", "To Class", CLASS_LEVELS, required=True),
        _text("prev_school_country", "Country", required=True, default="India"),
        _text("prev_school_zip_code", "Zipcode", required=True, pattern=POSTAL_CODE_PATTERN),
        _file("prev_school_report_card", "Report Card", required=True),
    ]
    return RepeatableGroup(
        name="previous_schools",
        label="Previous Schools",
        element_fields=[_member(fd) for fd in element_fields],
        element_rules=[
            _requires(
                "prev_school_other_board",
                "prev_school_board_affiliation",
                equals("prev_school_board_affiliation", "Other"),
                required=["prev_school_other_board_affiliation"],
            ),
        ],
        trigger_field="been_to_school_previously",
        populate_value=YES,
        depopulate_value=NO,
        min_items_message="Please provide details for at least one previous school.",
    )


def _languages_group() -> RepeatableGroup:
    element_fields = [
        _enum("language", "Language", LANGUAGES, required=True),
        _enum("proficiency", "Proficiency", PROFICIENCY, required=True),
        _text("other_language_name", "Language Name"),
    ]
    return RepeatableGroup(
        name="languages_known",
        label="Languages Known",
        element_fields=[_member(fd) for fd in element_fields],
        element_rules=[
            _requires(
                "language_other",
                "language",
                equals("language", "Other"),
                required=["other_language_name"],
            ),
        ],
        min_items=1,
        min_items_message="Please add at least one language.",
    )


# ---------------------------------------------------------------------------
# Form
# ---------------------------------------------------------------------------

def _scalar_fields(settings: EngineSettings, today: date) -> List[FieldDefinition]:
    text_area = dict(max_length=settings.text_area_max_length)
    fields = [
        # Application
        _text("application_year", "Application Academic Year", required=True,
              default=current_academic_year(today)),
        _enum("applied_for", "Applied For", APPLIED_FOR, required=True),
        _text("applicant_user", "Applicant User"),
        _yes_no("applied_to_ihs_before", "Applied to IHS before"),
        _enum("previous_application_application_year", "Previous Application Year",
              last_academic_years(settings.previous_application_years, today)),
        _enum("previous_application_applied_for", "Previously Applied For", APPLIED_FOR),
        _text("previous_application_remarks", "Previous Application Remarks", **text_area),

        # Personal
        _text("first_name", "First Name", required=True),
        _text("middle_name", "Middle Name"),
        _text("last_name", "Last Name", required=True),
        FieldDefinition("age", FieldType.NUMBER, "Age", required=True, min_value=0, max_value=100,
                        integer_only=True),
        _enum("gender", "Gender", GENDER, required=True),
        _text("other_gender", "Other Gender"),
        _text("nationality", "Nationality", required=True),
        _text("country_of_residence", "Country of Residence", required=True),
        _text("country", "Country of Birth", required=True),
        _date("date_of_birth", "Date of Birth", required=True, past_only=True),

        # Communication address
        _text("comm_address_country", "Country", required=True),
        _text("comm_address_area_code", "Area Code/ Pincode", required=True, pattern=r"\d{4,9}"),
        _text("comm_address_line_1", "Address Line 1", required=True),
        _text("comm_address_line_2", "Address Line 2"),
        _text("comm_address_city", "City/ Town", required=True),
        _text("comm_address_state", "State", required=True),

        _text("identification_mark_1", "Identification Mark 1", required=True),
        _text("identification_mark_2", "Identification Mark 2", required=True),
        _enum("religion", "Religion", RELIGION, required=True),
        _text("other_religion", "Other Religion"),
        _enum("community", "Community", COMMUNITY, required=True),
        _text("other_community", "Other Community"),
        _enum("mother_tongue", "Mother Tongue", LANGUAGES, required=True),
        _text("other_mother_tongue", "Other Mother Tongue"),
        _group_field("languages_known", "Languages Known"),

        _yes_no("has_sibling_in_ihs", "Sibling in IHS"),
        _group_field("student_siblings", "Siblings"),

        # Documents and identity
        _file("recent_photograph", "Recent Photograph", required=True),
        _file("birth_certificate", "Birth Certificate", required=True),
        _enum("id_proof", "ID Proof", ID_PROOF, required=True),
        _file("id_proof_document", "ID Proof Document", required=True),
        _text("aadhaar_number", "Aadhaar Number", pattern=r"\d{12}"),
        _text("passport_number", "Passport Number"),
        _text("place_of_issue", "Place of Issue"),
        _date("date_of_issue", "Date of Issue"),
        _date("date_of_expiry", "Date of Expiry"),

        # Academics
        _yes_no("is_home_schooled", "Home Schooled"),
        _text("current_school_name", "School Name"),
        _enum("current_school_board_affiliation", "Board Affiliation", BOARD_AFFILIATION),
        _text("current_school_other_board_affiliation", "Other Board Affiliation"),
        _phone("current_school_phone_number", "School Phone Number"),
        _text("current_school_country", "School Country"),
        _text("current_school_area_code", "School Area Code", pattern=POSTAL_CODE_PATTERN),
        _text("current_school_city", "School City/ Town"),
        _text("current_school_state", "School State"),
        _email("current_school_email_address", "School Email Address"),
        _text("current_school_a_line1", "School Address Line 1"),
        _text("current_school_a_line2", "School Address Line 2"),
        _yes_no("was_the_applicant_ever_home_schooled", "Ever Home Schooled", required=False),
        _text("emis_id", "EMIS ID"),
        _yes_no("been_to_school_previously", "Been to school previously"),
        _group_field("previous_schools", "Previous Schools"),

        _text("academic_strengths_and_weaknesses", "Academic Strengths and Weaknesses",
              required=True, **text_area),
        _text("hobbies_interests_and_extra_curricular_activities",
              "Hobbies, Interests and Extra-curricular Activities", required=True, **text_area),
        _text("other_details_of_importance", "Other Details of Importance", **text_area),
        _text("temperament_and_personality", "Temperament and Personality", required=True, **text_area),
        _text("special_learning_needs_or_learning_disability",
              "Special Learning Needs or Learning Disability", required=True, **text_area),
    ]

    # Health
    fields += [_yes_no(f"done_{v}_vaccine", f"{v.replace('_', ' ').title()} Vaccine") for v in VACCINES]
    fields += [
        _text("other_vaccines", "Other Vaccines"),
        _file("vaccine_certificates", "Vaccine Certificates"),
        _enum("blood_group", "Blood Group", BLOOD_GROUP, required=True),
        _yes_no("wears_glasses_or_lens", "Wears glasses or lens"),
        _text("right_eye_power", "Right Eye Power"),
        _text("left_eye_power", "Left Eye Power"),
        _yes_no("is_toilet_trained", "Toilet trained", required=False),
        _yes_no("wets_bed", "Wets bed", required=False),
        _text("bed_wet_frequency", "Bed Wetting Frequency"),
    ]
    for trigger, details in HEALTH_TRIGGERS:
        fields.append(_yes_no(trigger, trigger.replace("_", " ").capitalize(),
                              required=trigger != "needs_special_attention"))
        for detail in details:
            if detail == "medical_prescription":
                fields.append(_file(detail, "Medical Prescription"))
            else:
                fields.append(_text(detail, detail.replace("_", " ").capitalize(), **text_area))

    # Parents and guardians
    fields += [
        _group_field("students_parents", "Parents"),
        _enum("parent_marital_status", "Parent Marital Status", MARITAL_STATUS, required=True),
        _enum("who_is_responsible_for_paying_applicants_tuition_fee", "Tuition Fee Paid By",
              FATHER_MOTHER_BOTH),
        _file("court_order_document", "Court Order"),
        _enum("who_is_allowed_to_receive_school_communication", "Receives School Communication",
              FATHER_MOTHER_BOTH),
        _file("legal_rights_document", "Legal Rights Document"),
        _enum("who_is_allowed_to_receive_report_cards", "Receives Report Cards", FATHER_MOTHER_BOTH),
        _enum("visit_rights", "Visit Rights", FATHER_MOTHER_BOTH),
        _yes_no("parents_are_local_guardians", "Parents are local guardians"),
        _group_field("student_guardians", "Local Guardians"),
    ]

    # Class XI preferences
    fields += [
        _enum("group_a", "Group A", GROUP_A),
        _enum("group_b", "Group B", GROUP_B),
        _enum("group_c", "Group C", GROUP_C),
        _enum("group_d", "Group D", GROUP_D),
    ]
    fields += [_text(q, q.replace("_", " ").capitalize(), **text_area) for q in QUESTIONNAIRE_FIELDS]

    # Declaration and billing
    fields += [
        FieldDefinition("declaration", FieldType.BOOLEAN, "Declaration", required=True),
        _date("date", "Date", required=True),
        _text("place", "Place", required=True),
        _text("billing_name", "Billing Full Name", required=True),
        _phone("billing_phone", "Billing Phone", required=True),
        _email("billing_email", "Billing Email", required=True),
        _text("billing_country", "Billing Country", required=True),
        _text("billing_area_code", "Billing Area Code/ Pincode", required=True),
        _text("billing_city", "Billing City/ Town", required=True),
        _text("billing_state", "Billing State"),
        _text("billing_address_l1", "Billing Address Line 1", required=True),
        _text("billing_address_l2", "Billing Address Line 2"),
    ]
    return fields


def _rule_table() -> List[Rule]:
    rules = [
        _requires(
            "previous_application", "applied_to_ihs_before", equals("applied_to_ihs_before", YES),
            required=["previous_application_application_year", "previous_application_applied_for"],
            optional=["previous_application_remarks"],
        ),
        _requires("gender_other", "gender", equals("gender", "Other"), required=["other_gender"]),
        _requires("religion_other", "religion", equals("religion", "Other"), required=["other_religion"]),
        _requires("community_other", "community", equals("community", "Other"), required=["other_community"]),
        _requires("mother_tongue_other", "mother_tongue", equals("mother_tongue", "Other"),
                  required=["other_mother_tongue"]),
        _requires("id_proof_aadhaar", "id_proof", equals("id_proof", "Aadhaar Card"),
                  required=["aadhaar_number"]),
        _requires("id_proof_passport", "id_proof", equals("id_proof", "Passport"),
                  required=["passport_number", "place_of_issue", "date_of_issue", "date_of_expiry"]),
        _requires(
            "current_school", "is_home_schooled", equals("is_home_schooled", NO),
            required=[
                "current_school_name", "current_school_board_affiliation", "current_school_phone_number",
                "current_school_country", "current_school_area_code", "current_school_city",
                "current_school_state", "current_school_email_address", "current_school_a_line1",
                "was_the_applicant_ever_home_schooled",
            ],
            optional=["current_school_a_line2", "emis_id"],
        ),
        _requires(
            "current_school_other_board", "current_school_board_affiliation",
            all_of(equals("is_home_schooled", NO), equals("current_school_board_affiliation", "Other")),
            required=["current_school_other_board_affiliation"],
        ),
        _requires("eye_power", "wears_glasses_or_lens", equals("wears_glasses_or_lens", YES),
                  required=["right_eye_power", "left_eye_power"]),
        _requires("class_ii_hygiene", "applied_for", equals("applied_for", "Class II"),
                  required=["is_toilet_trained", "wets_bed"]),
        _requires("bed_wet_frequency", "wets_bed",
                  all_of(equals("applied_for", "Class II"), equals("wets_bed", YES)),
                  required=["bed_wet_frequency"]),
    ]
    for trigger, details in HEALTH_TRIGGERS:
        rules.append(_requires(f"{trigger}_details", trigger, equals(trigger, YES), required=list(details)))
    rules += [
        _requires("divorce_details", "parent_marital_status", equals("parent_marital_status", "Divorced"),
                  required=list(DIVORCE_FIELDS)),
        _requires("class_xi_preferences", "applied_for", equals("applied_for", "Class XI"),
                  required=["group_a", "group_b", "group_c", "group_d"],
                  optional=list(QUESTIONNAIRE_FIELDS)),
    ]
    return rules


def build_admission_form(settings: Optional[EngineSettings] = None,
                         today: Optional[date] = None) -> FormDefinition:
    """
    Build the admission form definition.

    The rule table is checked for contradictory effects before the form is
    returned; a contradiction raises RuleTableError. Weaker findings of the
    static analysis are emitted as UserWarning.
    """
    settings = settings or EngineSettings()
    today = today or date.today()

    form = FormDefinition(
        name="IHS Admission Registration",
        fields=_scalar_fields(settings, today),
        rules=_rule_table(),
        groups=[
            _parents_group(),
            _guardians_group(),
            _siblings_group(),
            _previous_schools_group(today),
            _languages_group(),
        ],
        metadata={"academic_year": current_academic_year(today)},
    )

    conflicts = find_rule_conflicts(form)
    if conflicts:
        raise RuleTableError("Contradictory rules: " + "; ".join(conflicts))

    for warning in analyze_form(form).warnings:
        warnings.warn(f"{form.name}: {warning}", UserWarning)
    return form
