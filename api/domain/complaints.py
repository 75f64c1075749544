# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Complaint domain logic for intake and workflow management.

This module contains pure functions for submission validation, moderation
policy, status transitions and audit entry construction.
"""

from typing import List, Dict, Optional, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from models.entities import (
    Complaint, ComplaintLogEntry, ComplaintType, ModerationResult,
    ActorContext, GeoPoint
)
from models.enums import ComplaintStatus, LogEvent, TERMINAL_STATUSES
from models.requests import SubmitComplaintRequest


VALID_TRANSITIONS: Dict[ComplaintStatus, frozenset] = {
    ComplaintStatus.SUBMITTED: frozenset({
        ComplaintStatus.VALIDATED, ComplaintStatus.REJECTED, ComplaintStatus.MERGED
    }),
    ComplaintStatus.VALIDATED: frozenset({
        ComplaintStatus.ASSIGNED, ComplaintStatus.REJECTED, ComplaintStatus.MERGED
    }),
    ComplaintStatus.ASSIGNED: frozenset({
        ComplaintStatus.IN_PROGRESS, ComplaintStatus.REJECTED, ComplaintStatus.MERGED
    }),
    ComplaintStatus.IN_PROGRESS: frozenset({
        ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED, ComplaintStatus.MERGED
    }),
    ComplaintStatus.RESOLVED: frozenset(),  # Terminal state
    ComplaintStatus.REJECTED: frozenset(),  # Terminal state
    ComplaintStatus.MERGED: frozenset(),  # Terminal state
}


class ModerationDecision(str, Enum):
    """Policy outcome of a moderation screen."""
    ACCEPT = "accept"
    FLAG = "flag"
    REJECT = "reject"


@dataclass
class ValidationResult:
    """Result of a validation check."""
    is_valid: bool
    errors: List[str]


@dataclass
class ModerationPolicy:
    """Severity thresholds applied to moderation results."""
    flag_threshold: float = 1.0
    reject_threshold: float = 3.0

    def __post_init__(self):
        if self.flag_threshold < 0 or self.reject_threshold < 0:
            raise ValueError("Moderation thresholds must not be negative")
        if self.flag_threshold > self.reject_threshold:
            raise ValueError("Flag threshold cannot exceed reject threshold")


@dataclass(frozen=True)
class ValidatedSubmission:
    """Submission that passed validation and moderation, ready for creation."""
    submitter_id: str
    type_id: str
    description: str
    moderation: ModerationResult
    fingerprint: str
    needs_review: bool
    submitted_at: datetime
    location: Optional[GeoPoint] = None


@dataclass
class TransitionPlan:
    """Validated change to apply to a complaint."""
    updates: Dict[str, object]
    entry: ComplaintLogEntry
    warnings: List[str] = field(default_factory=list)


def validate_submission_shape(request: SubmitComplaintRequest) -> ValidationResult:
    """
    Validate presence of required submission fields.

    Args:
        request: Raw submission

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    for field_name in ("submitter_id", "type_id", "description"):
        value = getattr(request, field_name)
        if value is None:
            errors.append(f"Missing required field: {field_name}")
        elif not str(value).strip():
            errors.append(f"Field '{field_name}' cannot be empty")

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def validate_type_exists(type_id: str, complaint_types: Dict[str, ComplaintType]) -> ValidationResult:
    """
    Validate that a complaint type exists and is active.

    Args:
        type_id: Complaint type ID
        complaint_types: Catalog keyed by type ID

    Returns:
        ValidationResult with validation status and errors
    """
    complaint_type = complaint_types.get(type_id)
    if complaint_type is None:
        return ValidationResult(is_valid=False, errors=[f"Complaint type not found: {type_id}"])
    if not complaint_type.is_active:
        return ValidationResult(is_valid=False, errors=[f"Complaint type is not active: {type_id}"])
    return ValidationResult(is_valid=True, errors=[])


def decide_moderation(result: ModerationResult, policy: ModerationPolicy) -> ModerationDecision:
    """
    Apply moderation thresholds.

    Severity strictly above the reject threshold rejects; severity at or above
    the flag threshold (and not rejected) flags for manual review.
    """
    if result.severity > policy.reject_threshold:
        return ModerationDecision.REJECT
    if result.severity > 0 and result.severity >= policy.flag_threshold:
        return ModerationDecision.FLAG
    return ModerationDecision.ACCEPT


def build_complaint(submission: ValidatedSubmission, assigned_unit_id: str) -> Complaint:
    """Construct a new complaint in its initial status."""
    moderation = submission.moderation
    return Complaint(
        submitter_id=submission.submitter_id,
        type_id=submission.type_id,
        description=submission.description,
        location=submission.location,
        has_profanity=moderation.has_profanity,
        moderation_severity=moderation.severity,
        sentiment=moderation.sentiment,
        matched_terms=moderation.matched_terms,
        needs_review=submission.needs_review,
        fingerprint=submission.fingerprint,
        status=ComplaintStatus.SUBMITTED,
        assigned_unit_id=assigned_unit_id,
        created_at=submission.submitted_at,
        updated_at=submission.submitted_at
    )


def build_creation_entry(complaint: Complaint, actor: ActorContext, now: datetime) -> ComplaintLogEntry:
    """Audit entry recording the creation of a complaint."""
    note = "Complaint submitted"
    if complaint.needs_review:
        note = "Complaint submitted; marked for manual review"
    return ComplaintLogEntry(
        complaint_id=complaint.id,
        event=LogEvent.CREATED,
        from_status=None,
        to_status=ComplaintStatus.SUBMITTED,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        timestamp=now,
        note=note,
        sequence=1
    )


def build_merge_note(
    complaint: Complaint,
    actor: ActorContext,
    sequence: int,
    now: datetime,
    submitter_id: Optional[str] = None
) -> ComplaintLogEntry:
    """Audit annotation recording a duplicate submission folded into a complaint."""
    note = "Duplicate submission merged"
    if submitter_id:
        note = f"Duplicate submission merged (submitter {submitter_id})"
    return ComplaintLogEntry(
        complaint_id=complaint.id,
        event=LogEvent.DUPLICATE_MERGED,
        from_status=complaint.status,
        to_status=complaint.status,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        timestamp=now,
        note=note,
        sequence=sequence
    )


def validate_status_transition(
    current_status: ComplaintStatus,
    new_status: ComplaintStatus
) -> ValidationResult:
    """
    Validate complaint status transition.

    Args:
        current_status: Current complaint status
        new_status: Desired new status

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    if ComplaintStatus(new_status) not in VALID_TRANSITIONS.get(ComplaintStatus(current_status), frozenset()):
        errors.append(
            f"Invalid status transition from {ComplaintStatus(current_status).value} "
            f"to {ComplaintStatus(new_status).value}"
        )

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors
    )


def is_terminal(status: ComplaintStatus) -> bool:
    """Check if a status has no outgoing transitions."""
    return ComplaintStatus(status) in TERMINAL_STATUSES


def plan_transition(
    complaint: Complaint,
    to_status: ComplaintStatus,
    actor: ActorContext,
    sequence: int,
    now: datetime,
    note: Optional[str] = None,
    unit_id: Optional[str] = None,
    merged_into_id: Optional[str] = None
) -> TransitionPlan:
    """
    Build the field updates and audit entry of a status transition.

    Callers validate the transition and its preconditions first; this only
    assembles what must be written in one unit of work.
    """
    to_status = ComplaintStatus(to_status)
    updates: Dict[str, object] = {
        "status": to_status,
        "updated_at": now,
        "version": complaint.version + 1,
    }
    warnings = []
    previous_unit_id = None

    if to_status == ComplaintStatus.ASSIGNED and unit_id and unit_id != complaint.assigned_unit_id:
        updates["assigned_unit_id"] = unit_id
        if complaint.assigned_unit_id:
            previous_unit_id = complaint.assigned_unit_id
            warnings.append(f"Reassigned from unit {previous_unit_id}")

    if to_status == ComplaintStatus.MERGED and merged_into_id:
        updates["merged_into_id"] = merged_into_id

    if to_status == ComplaintStatus.RESOLVED and note:
        updates["resolution_note"] = note

    entry = ComplaintLogEntry(
        complaint_id=complaint.id,
        event=LogEvent.TRANSITION,
        from_status=complaint.status,
        to_status=to_status,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        timestamp=now,
        note=note,
        previous_unit_id=previous_unit_id,
        sequence=sequence
    )

    return TransitionPlan(updates=updates, entry=entry, warnings=warnings)


def validate_status_path(entries: Sequence[ComplaintLogEntry], complete: bool = True) -> ValidationResult:
    """
    Check that the transition entries of an audit trail form a valid path.

    The first transition entry must be the creation into submitted, every
    later transition must follow the transition table, and no later entry
    may move into submitted. Duplicate merge notes must repeat the status the
    complaint had at that point.

    Args:
        entries: Log entries of one complaint, oldest first
        complete: False when older entries may have been purged, in which case
            the trail may start after the creation entry

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []
    current: Optional[ComplaintStatus] = None

    for index, entry in enumerate(entries):
        if entry.event == LogEvent.CREATED:
            if index != 0 or current is not None:
                errors.append(f"Creation entry at position {index} is not the first entry")
            current = ComplaintStatus.SUBMITTED
            continue

        if current is None:
            if complete:
                errors.append(f"Entry at position {index} precedes the creation entry")
            current = ComplaintStatus(entry.from_status or entry.to_status)

        if entry.event == LogEvent.DUPLICATE_MERGED:
            if ComplaintStatus(entry.to_status) != current:
                errors.append(f"Merge note at position {index} does not match status {current.value}")
            continue

        if ComplaintStatus(entry.from_status) != current:
            errors.append(
                f"Entry at position {index} starts from {ComplaintStatus(entry.from_status).value} "
                f"but complaint was {current.value}"
            )

        check = validate_status_transition(current, entry.to_status)
        errors.extend(check.errors)
        current = ComplaintStatus(entry.to_status)

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)

