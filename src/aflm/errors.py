"""
Custom exceptions for the aflm package.

Purpose
- Give each responsibility of the engine its own error type.
- Keep validation findings OUT of the exception hierarchy: format,
  required-field and consistency problems are reported as ValidationIssue
  records (see aflm.model.IssueKind), never raised.

Boundaries
- AddressLookupError never escapes aflm.address; the service turns it into
  group-scoped error text and clears the dependent fields.
- TransportError is raised to the caller of a submission and carries the
  server message verbatim. There is no automatic retry.
"""

from __future__ import annotations

from typing import Optional


class FormEngineError(Exception):
    """
    Base class for all errors raised by aflm.
    """


class ConfigError(FormEngineError):
    """
    Raised when engine settings are invalid.

    Examples:
        - Negative debounce interval
        - YAML settings file that is not a mapping
    """


class RuleTableError(FormEngineError):
    """
    Raised when the static rule table is inconsistent.

    Notes:
        Detected once when the form definition is built, never during
        evaluation of a snapshot.
    """


class SnapshotError(FormEngineError):
    """
    Raised when an event references a field path the form does not declare,
    or a group index that does not exist.
    """


class GroupCardinalityError(FormEngineError):
    """
    Raised when adding or removing a group element would leave a
    repeatable group outside its [min_items, max_items] bounds.
    """


class AddressLookupError(FormEngineError):
    """
    Raised by the address lookup client on a non-2xx response, malformed
    body, timeout or network failure.

    Notes:
        The message is meant for humans; the service shows it as the
        group's error text.
    """


class TransportError(FormEngineError):
    """
    Raised when a submission fails at the network or HTTP level.

    Attributes:
        status_code: HTTP status when a response was received, else None.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionBlockedError(FormEngineError):
    """
    Raised when a payload is requested for a snapshot that still has
    validation issues.

    Attributes:
        issues: The blocking ValidationIssue list.
    """

    def __init__(self, issues):
        super().__init__(f"Snapshot has {len(issues)} validation issue(s)")
        self.issues = list(issues)
