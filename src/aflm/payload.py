"""
Submission Payload Builder.

Serializes a fully valid snapshot into the JSON body of the admission
submission, and posts it.

Encoding:
    - Attachment `<field>` becomes two keys: `<field>` (base64 of the
      content) and `<field>_filename` (original file name)
    - Repeatable groups become ordered lists of element objects, encoded
      the same way
    - Dates become ISO "YYYY-MM-DD" strings
    - Booleans pass through; absent (None) values are omitted; empty
      strings are preserved
"""

import base64
import logging
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from aflm.config import EngineSettings
from aflm.errors import SubmissionBlockedError, TransportError
from aflm.model import Attachment, FieldDefinition, FieldType, FormDefinition
from aflm.validation import errors_only, validate

logger = logging.getLogger(__name__)


def encode_attachment(attachment: Attachment) -> str:
    return base64.b64encode(attachment.content).decode("ascii")


def _encode_fields(fields: Iterable[FieldDefinition], values: Mapping[str, Any],
                   form: Optional[FormDefinition] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for fd in fields:
        value = values.get(fd.id)
        if value is None:
            continue
        if fd.field_type == FieldType.ATTACHMENT and isinstance(value, Attachment):
            out[fd.id] = encode_attachment(value)
            out[f"{fd.id}_filename"] = value.filename
        elif fd.field_type == FieldType.GROUP and form is not None:
            group = form.get_group(fd.id)
            out[fd.id] = [_encode_fields(group.element_fields, element) for element in value]
        elif isinstance(value, date):
            out[fd.id] = value.isoformat()
        else:
            out[fd.id] = value
    return out


def build(form: FormDefinition, snapshot: Mapping[str, Any],
          settings: Optional[EngineSettings] = None, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Build the submission payload.

    Raises:
        SubmissionBlockedError: the snapshot still has ERROR issues.
    """
    blocking = errors_only(validate(form, snapshot, settings=settings, today=today))
    if blocking:
        raise SubmissionBlockedError(blocking)
    return _encode_fields(form.fields, snapshot, form)


class SubmissionClient:
    """
    Posts a payload to the configured submission endpoint.

    No retry: a failure is raised as TransportError carrying the server's
    message, and resubmitting is left to the user.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def submit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self.settings.submission_url
        if not url:
            raise TransportError("No submission URL configured.")
        try:
            response = requests.post(url, json=payload, timeout=self.settings.submission_timeout_seconds)
        except requests.RequestException as e:
            logger.info("Submission to %s failed: %s", url, e)
            raise TransportError(f"Submission failed: {e}") from e

        if not 200 <= response.status_code < 300:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = None
            if isinstance(body, dict):
                message = body.get("message")
            message = message or getattr(response, "reason", None) or "Unknown error"
            logger.info("Submission rejected (%s): %s", response.status_code, message)
            raise TransportError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Submission response was not JSON.", status_code=response.status_code) from e
        logger.info("Submission accepted (%s)", response.status_code)
        return data
