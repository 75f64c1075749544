# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for complaint domain logic.
"""

import pytest
from datetime import datetime, timedelta, timezone

from domain.complaints import (
    VALID_TRANSITIONS, ValidatedSubmission, build_complaint, build_creation_entry,
    build_merge_note, is_terminal, plan_transition, validate_status_path,
    validate_status_transition, validate_submission_shape, validate_type_exists
)
from models.entities import ActorContext, ComplaintLogEntry, ComplaintType, ModerationResult
from models.enums import ActorRole, ComplaintStatus, LogEvent
from models.requests import SubmitComplaintRequest


NOW = datetime(2024, 3, 12, 10, 30, tzinfo=timezone.utc)
OPERATOR = ActorContext(actor_id="operator-1", role=ActorRole.OPERATOR)
CITIZEN = ActorContext(actor_id="citizen-1", role=ActorRole.CITIZEN)


def make_submission(**overrides):
    data = {
        "submitter_id": "citizen-1",
        "type_id": "pothole",
        "description": "Pothole on main street",
        "moderation": ModerationResult(has_profanity=False, severity=0.0, sentiment=-0.25),
        "fingerprint": "fp-1",
        "needs_review": False,
        "submitted_at": NOW,
    }
    data.update(overrides)
    return ValidatedSubmission(**data)


def transition_entry(from_status, to_status, sequence, minutes=0):
    return ComplaintLogEntry(
        complaint_id="c1",
        from_status=from_status,
        to_status=to_status,
        actor_id="operator-1",
        timestamp=NOW + timedelta(minutes=minutes),
        sequence=sequence
    )


def creation_entry():
    return ComplaintLogEntry(
        complaint_id="c1",
        event=LogEvent.CREATED,
        to_status=ComplaintStatus.SUBMITTED,
        actor_id="citizen-1",
        timestamp=NOW,
        sequence=1
    )


class TestSubmissionValidation:
    """Test submission shape and type validation."""

    def test_valid_submission(self):
        request = SubmitComplaintRequest(submitter_id="c", type_id="pothole", description="hole")
        result = validate_submission_shape(request)

        assert result.is_valid
        assert result.errors == []

    def test_missing_fields(self):
        result = validate_submission_shape(SubmitComplaintRequest(type_id="pothole"))

        assert not result.is_valid
        assert "Missing required field: submitter_id" in result.errors
        assert "Missing required field: description" in result.errors

    def test_blank_fields(self):
        request = SubmitComplaintRequest(submitter_id="c", type_id="pothole", description="   ")
        result = validate_submission_shape(request)

        assert result.errors == ["Field 'description' cannot be empty"]

    def test_markup_is_plain_text(self):
        request = SubmitComplaintRequest(submitter_id="c", type_id="pothole", description="<b>hole</b>")
        result = validate_submission_shape(request)

        assert result.is_valid
        assert result.errors == []

    def test_type_exists(self):
        types = {
            "pothole": ComplaintType(id="pothole", name="Pothole"),
            "graffiti": ComplaintType(id="graffiti", name="Graffiti", is_active=False),
        }

        assert validate_type_exists("pothole", types).is_valid
        assert not validate_type_exists("missing", types).is_valid
        assert validate_type_exists("graffiti", types).errors == ["Complaint type is not active: graffiti"]


class TestComplaintConstruction:
    """Test complaint and audit entry builders."""

    def test_build_complaint(self):
        moderation = ModerationResult(has_profanity=True, severity=1.0, sentiment=-0.5, matched_terms=["shit"])
        complaint = build_complaint(make_submission(moderation=moderation, needs_review=True), "roads")

        assert complaint.status == ComplaintStatus.SUBMITTED
        assert complaint.assigned_unit_id == "roads"
        assert complaint.has_profanity is True
        assert complaint.moderation_severity == 1.0
        assert complaint.matched_terms == ["shit"]
        assert complaint.needs_review is True
        assert complaint.created_at == NOW
        assert complaint.updated_at == NOW

    def test_creation_entry(self):
        complaint = build_complaint(make_submission(), "roads")
        entry = build_creation_entry(complaint, CITIZEN, NOW)

        assert entry.event == LogEvent.CREATED
        assert entry.from_status is None
        assert entry.to_status == ComplaintStatus.SUBMITTED
        assert entry.sequence == 1
        assert entry.note == "Complaint submitted"

    def test_creation_entry_mentions_review(self):
        complaint = build_complaint(make_submission(needs_review=True), "roads")
        entry = build_creation_entry(complaint, CITIZEN, NOW)

        assert "manual review" in entry.note

    def test_merge_note(self):
        complaint = build_complaint(make_submission(), "roads")
        entry = build_merge_note(complaint, CITIZEN, 2, NOW, submitter_id="citizen-2")

        assert entry.event == LogEvent.DUPLICATE_MERGED
        assert entry.from_status == entry.to_status == ComplaintStatus.SUBMITTED
        assert entry.sequence == 2
        assert "citizen-2" in entry.note


class TestStatusTransitions:
    """Test the transition table."""

    @pytest.mark.parametrize("current,target", [
        (ComplaintStatus.SUBMITTED, ComplaintStatus.VALIDATED),
        (ComplaintStatus.VALIDATED, ComplaintStatus.ASSIGNED),
        (ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS),
        (ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED),
        (ComplaintStatus.SUBMITTED, ComplaintStatus.REJECTED),
        (ComplaintStatus.IN_PROGRESS, ComplaintStatus.MERGED),
    ])
    def test_allowed(self, current, target):
        assert validate_status_transition(current, target).is_valid

    @pytest.mark.parametrize("current,target", [
        (ComplaintStatus.SUBMITTED, ComplaintStatus.RESOLVED),
        (ComplaintStatus.SUBMITTED, ComplaintStatus.ASSIGNED),
        (ComplaintStatus.ASSIGNED, ComplaintStatus.VALIDATED),
        (ComplaintStatus.VALIDATED, ComplaintStatus.SUBMITTED),
        (ComplaintStatus.IN_PROGRESS, ComplaintStatus.IN_PROGRESS),
    ])
    def test_rejected(self, current, target):
        result = validate_status_transition(current, target)

        assert not result.is_valid
        assert f"from {current.value} to {target.value}" in result.errors[0]

    @pytest.mark.parametrize("terminal", [
        ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED, ComplaintStatus.MERGED
    ])
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert is_terminal(terminal)
        for target in ComplaintStatus:
            assert not validate_status_transition(terminal, target).is_valid

    def test_nothing_returns_to_submitted(self):
        for targets in VALID_TRANSITIONS.values():
            assert ComplaintStatus.SUBMITTED not in targets

    def test_accepts_string_values(self):
        assert validate_status_transition("submitted", "validated").is_valid


class TestPlanTransition:
    """Test transition planning."""

    def setup_method(self):
        self.complaint = build_complaint(make_submission(), "roads")

    def test_basic_updates(self):
        plan = plan_transition(self.complaint, ComplaintStatus.VALIDATED, OPERATOR, 2, NOW, note="ok")

        assert plan.updates == {
            "status": ComplaintStatus.VALIDATED,
            "updated_at": NOW,
            "version": 2,
        }
        assert plan.entry.from_status == ComplaintStatus.SUBMITTED
        assert plan.entry.to_status == ComplaintStatus.VALIDATED
        assert plan.entry.actor_role == ActorRole.OPERATOR
        assert plan.entry.note == "ok"
        assert plan.entry.sequence == 2

    def test_reassignment_recorded(self):
        plan = plan_transition(self.complaint, ComplaintStatus.ASSIGNED, OPERATOR, 3, NOW, unit_id="roads-north")

        assert plan.updates["assigned_unit_id"] == "roads-north"
        assert plan.warnings == ["Reassigned from unit roads"]
        assert plan.entry.previous_unit_id == "roads"
        assert plan.entry.note is None

    def test_reassignment_keeps_full_length_note(self):
        note = "x" * 2000

        plan = plan_transition(
            self.complaint, ComplaintStatus.ASSIGNED, OPERATOR, 3, NOW, note=note, unit_id="roads-north"
        )

        assert plan.entry.note == note
        assert plan.entry.previous_unit_id == "roads"

    def test_assignment_to_same_unit(self):
        plan = plan_transition(self.complaint, ComplaintStatus.ASSIGNED, OPERATOR, 3, NOW, unit_id="roads")

        assert "assigned_unit_id" not in plan.updates
        assert plan.warnings == []

    def test_merge_target_recorded(self):
        plan = plan_transition(self.complaint, ComplaintStatus.MERGED, OPERATOR, 2, NOW, merged_into_id="other")
        assert plan.updates["merged_into_id"] == "other"

    def test_resolution_note(self):
        plan = plan_transition(self.complaint, ComplaintStatus.RESOLVED, OPERATOR, 5, NOW, note="Patched")
        assert plan.updates["resolution_note"] == "Patched"


class TestStatusPath:
    """Test audit trail path validation."""

    def test_happy_path(self):
        entries = [
            creation_entry(),
            transition_entry(ComplaintStatus.SUBMITTED, ComplaintStatus.VALIDATED, 2, 1),
            transition_entry(ComplaintStatus.VALIDATED, ComplaintStatus.ASSIGNED, 3, 2),
            transition_entry(ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS, 4, 3),
            transition_entry(ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED, 5, 4),
        ]
        assert validate_status_path(entries).is_valid

    def test_merge_notes_do_not_break_path(self):
        note = ComplaintLogEntry(
            complaint_id="c1",
            event=LogEvent.DUPLICATE_MERGED,
            from_status=ComplaintStatus.SUBMITTED,
            to_status=ComplaintStatus.SUBMITTED,
            actor_id="citizen-1",
            sequence=2
        )
        entries = [
            creation_entry(),
            note,
            transition_entry(ComplaintStatus.SUBMITTED, ComplaintStatus.VALIDATED, 3, 1),
        ]
        assert validate_status_path(entries).is_valid

    def test_skipped_status_detected(self):
        entries = [
            creation_entry(),
            transition_entry(ComplaintStatus.SUBMITTED, ComplaintStatus.RESOLVED, 2, 1),
        ]
        result = validate_status_path(entries)

        assert not result.is_valid
        assert "from submitted to resolved" in result.errors[0]

    def test_missing_creation_entry(self):
        entries = [transition_entry(ComplaintStatus.SUBMITTED, ComplaintStatus.VALIDATED, 2, 1)]

        assert not validate_status_path(entries).is_valid
        assert validate_status_path(entries, complete=False).is_valid

    def test_partial_trail_still_checked(self):
        entries = [
            transition_entry(ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS, 4, 3),
            transition_entry(ComplaintStatus.VALIDATED, ComplaintStatus.RESOLVED, 5, 4),
        ]
        assert not validate_status_path(entries, complete=False).is_valid
