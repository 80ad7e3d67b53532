"""
Shared fixtures: a fixed "today", the admission form, and a session
filled with a complete, valid application.
"""

from datetime import date

import pytest

from aflm.catalog import HEALTH_TRIGGERS, VACCINES, build_admission_form
from aflm.config import EngineSettings
from aflm.model import Attachment

TODAY = date(2025, 1, 10)

PHONE = "+16502530000"


def attachment(name: str = "photo.jpg", content_type: str = "image/jpeg") -> Attachment:
    return Attachment(filename=name, content=b"\xff\xd8\xff\xe0 fake image", content_type=content_type)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def form():
    return build_admission_form(today=TODAY)


@pytest.fixture
def settings():
    return EngineSettings(debounce_seconds=0.01, submission_url="https://forms.example.org/api/admissions")


VALID_ANSWERS = {
    "applied_for": "Class V",
    "applied_to_ihs_before": "No",
    "first_name": "Arjun",
    "last_name": "Kumar",
    "date_of_birth": "2014-06-15",
    "gender": "Male",
    "nationality": "Indian",
    "country_of_residence": "India",
    "country": "India",
    "comm_address_country": "India",
    "comm_address_area_code": "600001",
    "comm_address_state": "Tamil Nadu",
    "comm_address_city": "Chennai",
    "comm_address_line_1": "12 Lake View Road",
    "identification_mark_1": "Mole on left cheek",
    "identification_mark_2": "Scar on right knee",
    "religion": "Hindu",
    "community": "OC",
    "mother_tongue": "Tamil",
    "has_sibling_in_ihs": "No",
    "recent_photograph": attachment(),
    "birth_certificate": attachment("birth.pdf", "application/pdf"),
    "id_proof": "Aadhaar Card",
    "id_proof_document": attachment("aadhaar.png", "image/png"),
    "aadhaar_number": "123412341234",
    "is_home_schooled": "Yes",
    "been_to_school_previously": "No",
    "academic_strengths_and_weaknesses": "Strong in maths.",
    "hobbies_interests_and_extra_curricular_activities": "Chess and swimming.",
    "temperament_and_personality": "Calm.",
    "special_learning_needs_or_learning_disability": "None.",
    "blood_group": "Blood Group O+",
    "wears_glasses_or_lens": "No",
    "parent_marital_status": "Married",
    "parents_are_local_guardians": "Yes",
    "declaration": True,
    "date": "2025-01-10",
    "place": "Chennai",
    "billing_name": "Ravi Kumar",
    "billing_phone": PHONE,
    "billing_email": "ravi.kumar@gmail.com",
    "billing_country": "India",
    "billing_area_code": "600001",
    "billing_city": "Chennai",
    "billing_address_l1": "12 Lake View Road",
}
VALID_ANSWERS.update({f"done_{v}_vaccine": "Yes" for v in VACCINES})
VALID_ANSWERS.update({
    trigger: "No" for trigger, _ in HEALTH_TRIGGERS if trigger != "needs_special_attention"
})

VALID_PARENT = {
    "parent_first_name": "Ravi",
    "parent_last_name": "Kumar",
    "parent_relation": "Father",
    "parent_nationality": "Indian",
    "parent_country_of_residence": "India",
    "parent_contact_email": "ravi.kumar@gmail.com",
    "parent_contact_phone": PHONE,
    "parent_education": "Graduate",
    "parent_field_of_study": "Engineering",
    "parent_profession": "Information Technology",
    "parent_organization_name": "Acme Systems",
    "parent_designation": "Engineer",
    "parent_annual_income": "1200000",
}


def fill_valid(session):
    """Answer every required question of a fresh session."""
    for path, value in VALID_ANSWERS.items():
        session.set_value(path, value)
    for field_id, value in VALID_PARENT.items():
        session.set_value(f"students_parents[0].{field_id}", value)
    session.set_value("languages_known[0].language", "Tamil")
    session.set_value("languages_known[0].proficiency", "Native")
    return session
