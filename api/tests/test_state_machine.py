# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the complaint state machine.

Covers guarded transitions, preconditions, compare-and-swap retries,
serialization of concurrent transitions and post-commit notifications.
"""

import threading
import pytest
from unittest.mock import Mock

from domain.complaints import ValidatedSubmission
from domain.errors import (
    ComplaintClosedError, ComplaintNotFoundError, ConcurrencyConflictError,
    InvalidTransitionError, RoutingNotFoundError, StoreUnavailableError
)
from models.entities import ModerationResult
from models.enums import ComplaintStatus, LogEvent
from services.state_machine import ComplaintStateMachine, complaint_lock_key


def make_submission(clock, type_id="pothole", fingerprint="fp-1", description="Pothole near the school"):
    return ValidatedSubmission(
        submitter_id="citizen-1",
        type_id=type_id,
        description=description,
        moderation=ModerationResult(has_profanity=False, severity=0.0, sentiment=-0.25),
        fingerprint=fingerprint,
        needs_review=False,
        submitted_at=clock()
    )


class TestCreate:
    """Test complaint creation."""

    def test_create_routes_and_logs(self, state_machine, store, citizen, clock):
        complaint = state_machine.create(make_submission(clock), citizen)

        assert complaint.status == ComplaintStatus.SUBMITTED
        assert complaint.assigned_unit_id == "roads"
        assert store.get_complaint(complaint.id) == complaint

        entries = store.list_logs(complaint.id)
        assert len(entries) == 1
        assert entries[0].event == LogEvent.CREATED
        assert entries[0].actor_id == "citizen-1"
        assert entries[0].timestamp == clock()

    def test_create_without_route_writes_nothing(self, state_machine, store, citizen, clock):
        with pytest.raises(RoutingNotFoundError):
            state_machine.create(make_submission(clock, type_id="noise"), citizen)

        assert store.health_check()["complaints"] == 0
        assert store.health_check()["log_entries"] == 0

    def test_create_retries_transient_store_failure(self, state_machine, store, citizen, clock, monkeypatch):
        original = store.create_complaint
        attempts = []

        def flaky(complaint, entry):
            attempts.append(complaint.id)
            if len(attempts) == 1:
                raise StoreUnavailableError("primary stepped down")
            return original(complaint, entry)

        monkeypatch.setattr(store, "create_complaint", flaky)

        complaint = state_machine.create(make_submission(clock), citizen)

        assert len(attempts) == 2
        assert store.get_complaint(complaint.id) is not None

    def test_create_tolerates_committed_first_attempt(self, state_machine, store, citizen, clock, monkeypatch):
        original = store.create_complaint
        attempts = []

        def commit_then_fail(complaint, entry):
            attempts.append(complaint.id)
            if len(attempts) == 1:
                original(complaint, entry)
                raise StoreUnavailableError("connection reset after commit")
            return original(complaint, entry)

        monkeypatch.setattr(store, "create_complaint", commit_then_fail)

        complaint = state_machine.create(make_submission(clock), citizen)

        assert len(attempts) == 2
        assert len(store.list_logs(complaint.id)) == 1


class TestTransition:
    """Test guarded status transitions."""

    def test_happy_path(self, state_machine, store, operator, submitted_complaint, clock):
        for status in (ComplaintStatus.VALIDATED, ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS):
            clock.advance(minutes=5)
            complaint = state_machine.transition(submitted_complaint, status, operator)

        assert complaint.status == ComplaintStatus.IN_PROGRESS
        assert complaint.version == 4
        assert complaint.updated_at == clock()

        entries = store.list_logs(submitted_complaint)
        assert [e.sequence for e in entries] == [1, 2, 3, 4]
        assert [e.to_status for e in entries] == [
            ComplaintStatus.SUBMITTED, ComplaintStatus.VALIDATED,
            ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS
        ]
        assert all(e.actor_id == "operator-1" for e in entries[1:])

    def test_invalid_transition_leaves_complaint_unchanged(self, state_machine, store, operator, submitted_complaint):
        before = store.get_complaint(submitted_complaint)

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.transition(submitted_complaint, ComplaintStatus.RESOLVED, operator)

        assert exc_info.value.current == ComplaintStatus.SUBMITTED
        assert exc_info.value.target == ComplaintStatus.RESOLVED
        assert store.get_complaint(submitted_complaint) == before
        assert len(store.list_logs(submitted_complaint)) == 1

    @pytest.mark.parametrize("terminal", [ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED])
    def test_terminal_status_is_final(self, state_machine, store, operator, submitted_complaint, advance_to, terminal):
        if terminal == ComplaintStatus.RESOLVED:
            advance_to(submitted_complaint, ComplaintStatus.RESOLVED)
        else:
            state_machine.transition(submitted_complaint, ComplaintStatus.REJECTED, operator)
        entries_before = len(store.list_logs(submitted_complaint))

        for target in ComplaintStatus:
            with pytest.raises(InvalidTransitionError):
                state_machine.transition(submitted_complaint, target, operator)

        assert store.get_complaint(submitted_complaint).status == terminal
        assert len(store.list_logs(submitted_complaint)) == entries_before

    def test_unknown_complaint(self, state_machine, operator):
        with pytest.raises(ComplaintNotFoundError):
            state_machine.transition("5f0000000000000000000000", ComplaintStatus.VALIDATED, operator)

    def test_resolution_note_stored(self, state_machine, operator, submitted_complaint, advance_to):
        advance_to(submitted_complaint, ComplaintStatus.IN_PROGRESS)

        complaint = state_machine.transition(
            submitted_complaint, ComplaintStatus.RESOLVED, operator, note="Asphalt patched"
        )

        assert complaint.resolution_note == "Asphalt patched"
        assert not complaint.is_open()

    def test_closing_frees_fingerprint(self, state_machine, store, operator, submitted_complaint):
        fingerprint = store.get_complaint(submitted_complaint).fingerprint

        state_machine.transition(submitted_complaint, ComplaintStatus.REJECTED, operator)

        assert store.find_open_by_fingerprint(fingerprint) is None


class TestAssignment:
    """Test assignment preconditions."""

    def test_assign_keeps_routed_unit(self, state_machine, operator, submitted_complaint):
        state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)
        complaint = state_machine.transition(submitted_complaint, ComplaintStatus.ASSIGNED, operator)

        assert complaint.assigned_unit_id == "roads"

    def test_reassign_to_other_accepting_unit(self, state_machine, store, operator, submitted_complaint):
        state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)
        complaint = state_machine.transition(
            submitted_complaint, ComplaintStatus.ASSIGNED, operator, unit_id="roads-north"
        )

        assert complaint.assigned_unit_id == "roads-north"
        entry = store.list_logs(submitted_complaint)[-1]
        assert entry.previous_unit_id == "roads"
        assert entry.note is None

    def test_reassignment_with_full_length_note(self, state_machine, store, operator, submitted_complaint):
        state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)

        complaint = state_machine.transition(
            submitted_complaint, ComplaintStatus.ASSIGNED, operator, note="x" * 2000, unit_id="roads-north"
        )

        entry = store.list_logs(submitted_complaint)[-1]
        assert complaint.assigned_unit_id == "roads-north"
        assert entry.note == "x" * 2000
        assert entry.previous_unit_id == "roads"

    def test_oversized_note_is_invalid_transition(self, state_machine, store, operator, submitted_complaint):
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator, note="x" * 2001)

        assert store.get_complaint(submitted_complaint).status == ComplaintStatus.SUBMITTED

    @pytest.mark.parametrize("unit_id", ["water", "parks", "missing-unit"])
    def test_assign_to_unit_not_accepting_type(self, state_machine, store, operator, submitted_complaint, unit_id):
        state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)

        with pytest.raises(InvalidTransitionError):
            state_machine.transition(submitted_complaint, ComplaintStatus.ASSIGNED, operator, unit_id=unit_id)

        assert store.get_complaint(submitted_complaint).status == ComplaintStatus.VALIDATED


class TestMerge:
    """Test merging complaints into each other."""

    @pytest.fixture
    def second_complaint(self, complaint_service):
        return complaint_service.submit_complaint(
            "citizen-2", "pothole", "Same pothole on Atatürk Caddesi"
        ).complaint_id

    def test_merge_into_open_complaint(self, state_machine, store, operator, submitted_complaint, second_complaint):
        merged = state_machine.transition(
            second_complaint, ComplaintStatus.MERGED, operator, merged_into_id=submitted_complaint
        )

        assert merged.status == ComplaintStatus.MERGED
        assert merged.merged_into_id == submitted_complaint
        assert store.find_open_by_fingerprint(merged.fingerprint) is None
        assert store.get_complaint(submitted_complaint).status == ComplaintStatus.SUBMITTED

    def test_merge_into_itself(self, state_machine, operator, submitted_complaint):
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(
                submitted_complaint, ComplaintStatus.MERGED, operator, merged_into_id=submitted_complaint
            )

    def test_merge_into_missing_complaint(self, state_machine, operator, submitted_complaint):
        with pytest.raises(ComplaintNotFoundError):
            state_machine.transition(
                submitted_complaint, ComplaintStatus.MERGED, operator, merged_into_id="5f0000000000000000000000"
            )

    def test_merge_into_closed_complaint(self, state_machine, store, operator, submitted_complaint, second_complaint):
        state_machine.transition(submitted_complaint, ComplaintStatus.REJECTED, operator)

        with pytest.raises(InvalidTransitionError):
            state_machine.transition(
                second_complaint, ComplaintStatus.MERGED, operator, merged_into_id=submitted_complaint
            )

        assert store.get_complaint(second_complaint).status == ComplaintStatus.SUBMITTED


class TestDuplicateAnnotation:
    """Test duplicate merge notes."""

    def test_annotation_keeps_status_and_version(self, state_machine, store, citizen, submitted_complaint):
        before = store.get_complaint(submitted_complaint)

        annotated = state_machine.annotate_duplicate(submitted_complaint, citizen, "citizen-1")

        entry = store.list_logs(submitted_complaint)[-1]
        assert entry.event == LogEvent.DUPLICATE_MERGED
        assert entry.sequence == 2
        assert annotated == before
        assert store.get_complaint(submitted_complaint) == before

    @pytest.mark.parametrize("terminal", [ComplaintStatus.REJECTED, ComplaintStatus.MERGED])
    def test_annotation_of_closed_complaint(self, state_machine, store, citizen, operator, submitted_complaint, terminal):
        state_machine.transition(submitted_complaint, terminal, operator)
        entries_before = len(store.list_logs(submitted_complaint))

        with pytest.raises(ComplaintClosedError) as exc_info:
            state_machine.annotate_duplicate(submitted_complaint, citizen, "citizen-1")

        assert exc_info.value.status == terminal
        assert len(store.list_logs(submitted_complaint)) == entries_before

    def test_annotation_of_missing_complaint(self, state_machine, citizen):
        with pytest.raises(ComplaintNotFoundError):
            state_machine.annotate_duplicate("5f0000000000000000000000", citizen)


class TestConcurrency:
    """Test compare-and-swap retries and per-complaint serialization."""

    def test_conflict_is_retried(self, state_machine, store, operator, submitted_complaint, monkeypatch):
        original = store.apply_transition
        attempts = []

        def conflicting(*args):
            attempts.append(args)
            if len(attempts) == 1:
                raise ConcurrencyConflictError(args[0])
            return original(*args)

        monkeypatch.setattr(store, "apply_transition", conflicting)

        complaint = state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)

        assert len(attempts) == 2
        assert complaint.status == ComplaintStatus.VALIDATED
        assert len(store.list_logs(submitted_complaint)) == 2

    def test_persistent_conflict_surfaces(self, state_machine, store, operator, submitted_complaint, monkeypatch):
        store_apply = Mock(side_effect=ConcurrencyConflictError(submitted_complaint))
        monkeypatch.setattr(store, "apply_transition", store_apply)

        with pytest.raises(ConcurrencyConflictError):
            state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)

        assert store_apply.call_count == 3

    def test_lock_key(self):
        assert complaint_lock_key("abc") == "complaint:abc"

    def test_concurrent_transitions_apply_once(self, state_machine, store, operator, submitted_complaint):
        barrier = threading.Barrier(4)
        outcomes = []
        outcomes_lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                state_machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)
                outcome = "ok"
            except InvalidTransitionError:
                outcome = "invalid"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["invalid", "invalid", "invalid", "ok"]
        assert store.get_complaint(submitted_complaint).version == 2
        assert len(store.list_logs(submitted_complaint)) == 2


class TestNotifications:
    """Test post-commit notifications."""

    def test_notifies_on_resolution(self, state_machine, notifier, submitted_complaint, advance_to):
        advance_to(submitted_complaint, ComplaintStatus.RESOLVED)

        notifier.publish_status_change.assert_called_once()
        complaint, entry = notifier.publish_status_change.call_args[0]
        assert complaint.status == ComplaintStatus.RESOLVED
        assert entry.to_status == ComplaintStatus.RESOLVED
        assert entry.from_status == ComplaintStatus.IN_PROGRESS

    def test_no_notification_for_intermediate_statuses(self, state_machine, notifier, submitted_complaint, advance_to):
        advance_to(submitted_complaint, ComplaintStatus.IN_PROGRESS)
        notifier.publish_status_change.assert_not_called()

    def test_notification_failure_keeps_transition(self, state_machine, store, notifier, operator, submitted_complaint):
        notifier.publish_status_change.side_effect = RuntimeError("broker down")

        complaint = state_machine.transition(submitted_complaint, ComplaintStatus.REJECTED, operator)

        assert complaint.status == ComplaintStatus.REJECTED
        assert store.get_complaint(submitted_complaint).status == ComplaintStatus.REJECTED

    def test_configured_statuses(self, store, catalog, locks, audit, notifier, operator, clock, submitted_complaint):
        machine = ComplaintStateMachine(
            store=store, catalog=catalog, locks=locks, audit=audit, notifier=notifier,
            notify_on_statuses=["validated"], retry_delay=0, clock=clock
        )

        machine.transition(submitted_complaint, ComplaintStatus.VALIDATED, operator)

        notifier.publish_status_change.assert_called_once()
