# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the complaint pipeline.
"""

from enum import Enum


class ComplaintStatus(str, Enum):
    """Complaint workflow status enumeration."""
    SUBMITTED = "submitted"
    VALIDATED = "validated"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    MERGED = "merged"


OPEN_STATUSES = frozenset({
    ComplaintStatus.SUBMITTED,
    ComplaintStatus.VALIDATED,
    ComplaintStatus.ASSIGNED,
    ComplaintStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({
    ComplaintStatus.RESOLVED,
    ComplaintStatus.REJECTED,
    ComplaintStatus.MERGED,
})


class LogEvent(str, Enum):
    """Kinds of audit log entries."""
    CREATED = "created"
    TRANSITION = "transition"
    DUPLICATE_MERGED = "duplicate_merged"


class ActorRole(str, Enum):
    """Roles supplied by the identity provider."""
    CITIZEN = "citizen"
    OPERATOR = "operator"
    UNIT_STAFF = "unit_staff"
    ADMIN = "admin"
    SYSTEM = "system"


class ValidationErrorKind(str, Enum):
    """Reasons a submission is rejected by the validator."""
    MALFORMED = "malformed"
    UNKNOWN_TYPE = "unknown-type"
    PROFANITY_REJECTED = "profanity-rejected"
    CONTENT_TOO_LARGE = "content-too-large"
    ROUTING_NOT_FOUND = "routing-not-found"
