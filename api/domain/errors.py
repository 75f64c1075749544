# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for the complaint pipeline.

Each exception carries a machine-readable error type and the status code the
transport layer should map it to.
"""

from typing import Optional

from models.enums import ComplaintStatus, ValidationErrorKind


class ComplaintError(Exception):
    """Base class for complaint pipeline exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ComplaintValidationError(ComplaintError):
    """Submission rejected by the validator."""

    _status_codes = {
        ValidationErrorKind.MALFORMED: 400,
        ValidationErrorKind.UNKNOWN_TYPE: 422,
        ValidationErrorKind.PROFANITY_REJECTED: 422,
        ValidationErrorKind.CONTENT_TOO_LARGE: 413,
        ValidationErrorKind.ROUTING_NOT_FOUND: 422,
    }

    def __init__(self, kind: ValidationErrorKind, message: str, validation_errors: list = None):
        super().__init__(message, self._status_codes.get(kind, 400), "validation-error")
        self.kind = kind
        self.validation_errors = validation_errors or []


class ContentTooLargeError(ComplaintError):
    """Text exceeds the configured moderation limit."""

    def __init__(self, length: int, max_length: int):
        super().__init__(
            f"Text length {length} exceeds the limit of {max_length} characters",
            413,
            "content-too-large"
        )
        self.length = length
        self.max_length = max_length


class RoutingNotFoundError(ComplaintError):
    """No municipal unit accepts the complaint type."""

    def __init__(self, type_id: str):
        super().__init__(f"No municipal unit accepts complaint type '{type_id}'", 422, "routing-not-found")
        self.type_id = type_id


class InvalidTransitionError(ComplaintError):
    """Requested status change is not allowed."""

    def __init__(self, current: ComplaintStatus, target: ComplaintStatus, reason: Optional[str] = None):
        message = f"Invalid status transition from {ComplaintStatus(current).value} to {ComplaintStatus(target).value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, 409, "invalid-transition")
        self.current = ComplaintStatus(current)
        self.target = ComplaintStatus(target)


class ComplaintNotFoundError(ComplaintError):
    """Referenced complaint does not exist."""

    def __init__(self, complaint_id: str):
        super().__init__(f"Complaint {complaint_id} not found", 404, "resource-not-found")
        self.complaint_id = complaint_id


class ComplaintClosedError(ComplaintError):
    """Complaint is no longer open."""

    def __init__(self, complaint_id: str, status: ComplaintStatus):
        super().__init__(
            f"Complaint {complaint_id} is {ComplaintStatus(status).value}",
            409,
            "resource-conflict"
        )
        self.complaint_id = complaint_id
        self.status = ComplaintStatus(status)


class ConcurrencyConflictError(ComplaintError):
    """Complaint changed between read and write."""

    def __init__(self, complaint_id: str):
        super().__init__(f"Complaint {complaint_id} was modified concurrently", 409, "resource-conflict")
        self.complaint_id = complaint_id


class DuplicateFingerprintError(ComplaintError):
    """An open complaint with the same fingerprint already exists."""

    def __init__(self, fingerprint: str, existing_id: Optional[str] = None):
        super().__init__("An open complaint with this fingerprint already exists", 409, "duplicate-fingerprint")
        self.fingerprint = fingerprint
        self.existing_id = existing_id


class StoreUnavailableError(ComplaintError):
    """Transient persistence failure."""

    def __init__(self, message: str):
        super().__init__(message, 503, "service-unavailable")


class LockUnavailableError(ComplaintError):
    """Exclusive section could not be acquired in time."""

    def __init__(self, key: str):
        super().__init__(f"Could not acquire lock '{key}'", 503, "service-unavailable")
        self.key = key


class ConfigurationError(ComplaintError):
    """Invalid pipeline configuration."""

    def __init__(self, message: str):
        super().__init__(message, 500, "configuration-error")
