"""
Tests for the Submission Payload Builder and the submission client.
"""

import base64
from unittest.mock import MagicMock, patch

import pytest
import requests

from aflm.config import EngineSettings
from aflm.errors import SubmissionBlockedError, TransportError
from aflm.payload import SubmissionClient, build, encode_attachment
from aflm.session import FormSession

from conftest import TODAY, attachment, fill_valid


@pytest.fixture
def filled(settings):
    return fill_valid(FormSession(settings=settings, today=TODAY))


class TestBuild:
    def test_attachment_becomes_base64_and_filename(self, filled):
        payload = filled.build_payload()
        photo = filled.snapshot["recent_photograph"]
        assert payload["recent_photograph_filename"] == "photo.jpg"
        assert base64.b64decode(payload["recent_photograph"]) == photo.content

    def test_groups_are_lists_of_objects(self, filled):
        payload = filled.build_payload()
        assert payload["students_parents"][0]["parent_relation"] == "Father"
        assert payload["languages_known"] == [{"language": "Tamil", "proficiency": "Native"}]
        assert payload["student_siblings"] == []

    def test_absent_values_omitted_empty_strings_kept(self, filled):
        payload = filled.build_payload()
        assert "middle_name" not in payload
        assert "other_gender" not in payload
        assert payload["students_parents"][0]["parent_address_line2"] == ""

    def test_scalars_pass_through(self, filled):
        payload = filled.build_payload()
        assert payload["declaration"] is True
        assert payload["age"] == 10
        assert payload["date_of_birth"] == "2014-06-15"
        assert payload["application_year"] == "2025-26"

    def test_blocked_when_invalid(self, form):
        with pytest.raises(SubmissionBlockedError) as excinfo:
            build(form, {"gender": "Other"}, today=TODAY)
        assert any(i.field_path == "other_gender" for i in excinfo.value.issues)


def test_encode_attachment():
    assert encode_attachment(attachment()) == base64.b64encode(attachment().content).decode("ascii")


def response(status_code=200, body=None, reason="OK"):
    r = MagicMock()
    r.status_code = status_code
    r.reason = reason
    if isinstance(body, Exception):
        r.json.side_effect = body
    else:
        r.json.return_value = body
    return r


class TestSubmissionClient:
    settings = EngineSettings(submission_url="https://forms.example.org/api/admissions")

    @patch("aflm.payload.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = response(201, {"id": "APP-1"})
        assert SubmissionClient(self.settings).submit({"first_name": "Arjun"}) == {"id": "APP-1"}
        args, kwargs = mock_post.call_args
        assert args[0] == "https://forms.example.org/api/admissions"
        assert kwargs["json"] == {"first_name": "Arjun"}
        assert kwargs["timeout"] == 30.0

    @patch("aflm.payload.requests.post")
    def test_server_message_is_kept(self, mock_post):
        mock_post.return_value = response(400, {"message": "Duplicate application"}, "Bad Request")
        with pytest.raises(TransportError, match="Duplicate application") as excinfo:
            SubmissionClient(self.settings).submit({})
        assert excinfo.value.status_code == 400

    @patch("aflm.payload.requests.post")
    def test_reason_when_no_message(self, mock_post):
        mock_post.return_value = response(502, ValueError("html"), "Bad Gateway")
        with pytest.raises(TransportError, match="Bad Gateway"):
            SubmissionClient(self.settings).submit({})

    @patch("aflm.payload.requests.post")
    def test_network_failure(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransportError) as excinfo:
            SubmissionClient(self.settings).submit({})
        assert excinfo.value.status_code is None

    def test_no_url(self):
        with pytest.raises(TransportError):
            SubmissionClient(EngineSettings()).submit({})
