# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Complaint state machine.

Every status change goes through this service. It serializes transitions per
complaint with a keyed lock, guards the write with a compare-and-swap on
(status, version), writes the log entry in the same unit of work, and
announces selected statuses after commit.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from opentelemetry import trace
from pydantic import ValidationError

from domain.complaints import (
    ValidatedSubmission, build_complaint, build_creation_entry, build_merge_note,
    plan_transition, validate_status_transition
)
from domain.errors import (
    ComplaintClosedError, ComplaintNotFoundError, ConcurrencyConflictError,
    DuplicateFingerprintError, InvalidTransitionError
)
from models.base import utc_now
from models.entities import ActorContext, Complaint, ComplaintLogEntry
from models.enums import ComplaintStatus
from .audit import AuditLogService
from .catalog import CatalogService
from .retry import retry_store_operation
from .store import ComplaintStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_NOTIFY_ON = (ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED)


def complaint_lock_key(complaint_id: str) -> str:
    return f"complaint:{complaint_id}"


class ComplaintStateMachine:
    """Guarded complaint transitions with an atomic audit trail."""

    def __init__(
        self,
        store: ComplaintStore,
        catalog: CatalogService,
        locks,
        audit: AuditLogService,
        notifier,
        notify_on_statuses: Iterable[ComplaintStatus] = DEFAULT_NOTIFY_ON,
        max_retries: int = 3,
        retry_delay: float = 0.2,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.catalog = catalog
        self.locks = locks
        self.audit = audit
        self.notifier = notifier
        self.notify_on_statuses = frozenset(ComplaintStatus(s) for s in notify_on_statuses)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.clock = clock

    def _with_retry(self, operation, operation_name: str):
        return retry_store_operation(
            operation,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            operation_name=operation_name
        )

    def create(self, submission: ValidatedSubmission, actor: ActorContext) -> Complaint:
        """
        Create a complaint in submitted status with its creation log entry.

        The responsible unit is resolved from the routing table before
        anything is written.

        Raises:
            RoutingNotFoundError: If no active unit accepts the type
            DuplicateFingerprintError: If an open complaint already holds the fingerprint
        """
        with tracer.start_as_current_span("state_machine.create") as span:
            span.set_attribute("complaint.type_id", submission.type_id)
            try:
                unit_id = self.catalog.resolver().resolve(submission.type_id)
                complaint = build_complaint(submission, unit_id)
                entry = build_creation_entry(complaint, actor, complaint.created_at)

                span.set_attributes({
                    "complaint.id": complaint.id,
                    "complaint.assigned_unit_id": unit_id
                })

                try:
                    self._with_retry(
                        lambda: self.store.create_complaint(complaint, entry),
                        "create_complaint"
                    )
                except DuplicateFingerprintError as e:
                    # A retried write whose first attempt had committed
                    if e.existing_id != complaint.id:
                        raise

                self.audit.record(entry)

                logger.info(
                    "Complaint created",
                    extra={
                        "extra_fields": {
                            "complaint_id": complaint.id,
                            "type_id": complaint.type_id,
                            "assigned_unit_id": unit_id,
                            "needs_review": complaint.needs_review
                        }
                    }
                )
                return complaint

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def annotate_duplicate(
        self,
        complaint_id: str,
        actor: ActorContext,
        submitter_id: Optional[str] = None
    ) -> Complaint:
        """
        Record a duplicate submission on an open complaint without changing its status.

        Returns:
            The annotated complaint as read under its lock

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
            ComplaintClosedError: If the complaint closed after it was looked up
        """
        with tracer.start_as_current_span("state_machine.annotate_duplicate") as span:
            span.set_attribute("complaint.id", complaint_id)
            with self.locks.hold(complaint_lock_key(complaint_id)):
                complaint = self._with_retry(lambda: self.store.get_complaint(complaint_id), "get_complaint")
                if complaint is None:
                    raise ComplaintNotFoundError(complaint_id)
                if not complaint.is_open():
                    span.set_attribute("complaint.status", complaint.status.value)
                    raise ComplaintClosedError(complaint_id, complaint.status)

                sequence = self._with_retry(lambda: self.store.next_sequence(complaint_id), "next_sequence")
                entry = build_merge_note(complaint, actor, sequence, self.clock(), submitter_id)
                self._with_retry(lambda: self.store.append_merge_note(complaint_id, entry), "append_merge_note")

            self.audit.record(entry)
            span.set_attribute("complaint.status", complaint.status.value)
            return complaint

    def transition(
        self,
        complaint_id: str,
        to_status: ComplaintStatus,
        actor: ActorContext,
        note: Optional[str] = None,
        unit_id: Optional[str] = None,
        merged_into_id: Optional[str] = None
    ) -> Complaint:
        """
        Move a complaint to a new status.

        Args:
            complaint_id: Complaint to transition
            to_status: Target status
            actor: Caller identity recorded in the log
            note: Optional note; stored as the resolution note when resolving
            unit_id: Unit to (re)assign when moving to assigned
            merged_into_id: Surviving complaint when moving to merged

        Returns:
            Complaint after the transition

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
            InvalidTransitionError: If the table or a precondition forbids the change
            ConcurrencyConflictError: If the complaint kept changing underneath
        """
        to_status = ComplaintStatus(to_status)

        with tracer.start_as_current_span("state_machine.transition") as span:
            span.set_attributes({
                "complaint.id": complaint_id,
                "complaint.to_status": to_status.value,
                "actor.id": actor.actor_id
            })

            try:
                with self.locks.hold(complaint_lock_key(complaint_id)):
                    updated, plan = self._transition_locked(
                        complaint_id, to_status, actor, note, unit_id, merged_into_id
                    )
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

            entry = plan.entry
            span.set_attribute("complaint.version", updated.version)
            self.audit.record(entry)

            logger.info(
                "Complaint transitioned",
                extra={
                    "extra_fields": {
                        "complaint_id": complaint_id,
                        "from_status": entry.from_status.value,
                        "to_status": to_status.value,
                        "actor_id": actor.actor_id,
                        "version": updated.version,
                        "warnings": plan.warnings
                    }
                }
            )

            if to_status in self.notify_on_statuses:
                self._notify(updated, entry)

            return updated

    def _transition_locked(self, complaint_id, to_status, actor, note, unit_id, merged_into_id):
        for attempt in range(self.max_retries + 1):
            complaint = self._with_retry(lambda: self.store.get_complaint(complaint_id), "get_complaint")
            if complaint is None:
                raise ComplaintNotFoundError(complaint_id)

            check = validate_status_transition(complaint.status, to_status)
            if not check.is_valid:
                raise InvalidTransitionError(complaint.status, to_status)

            self._check_preconditions(complaint, to_status, unit_id, merged_into_id)

            sequence = self._with_retry(lambda: self.store.next_sequence(complaint_id), "next_sequence")
            try:
                plan = plan_transition(
                    complaint, to_status, actor, sequence, self.clock(),
                    note=note, unit_id=unit_id, merged_into_id=merged_into_id
                )
            except ValidationError as e:
                raise InvalidTransitionError(complaint.status, to_status, f"invalid log entry: {e.errors()[0]['msg']}")

            try:
                updated = self._with_retry(
                    lambda: self.store.apply_transition(
                        complaint_id, complaint.status, complaint.version, plan.updates, plan.entry
                    ),
                    "apply_transition"
                )
                return updated, plan
            except ConcurrencyConflictError:
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    "Concurrent complaint update, re-reading",
                    extra={"extra_fields": {"complaint_id": complaint_id, "attempt": attempt + 1}}
                )

    def _check_preconditions(
        self,
        complaint: Complaint,
        to_status: ComplaintStatus,
        unit_id: Optional[str],
        merged_into_id: Optional[str]
    ) -> None:
        if to_status == ComplaintStatus.ASSIGNED:
            if unit_id:
                if not self.catalog.resolver().accepts(unit_id, complaint.type_id):
                    raise InvalidTransitionError(
                        complaint.status, to_status,
                        f"unit {unit_id} does not accept complaint type {complaint.type_id}"
                    )
            elif not complaint.assigned_unit_id:
                raise InvalidTransitionError(complaint.status, to_status, "no unit assigned")

        if to_status == ComplaintStatus.MERGED and merged_into_id:
            if merged_into_id == complaint.id:
                raise InvalidTransitionError(complaint.status, to_status, "cannot merge into itself")
            target = self._with_retry(lambda: self.store.get_complaint(merged_into_id), "get_complaint")
            if target is None:
                raise ComplaintNotFoundError(merged_into_id)
            if not target.is_open():
                raise InvalidTransitionError(
                    complaint.status, to_status,
                    f"target complaint {merged_into_id} is {target.status.value}"
                )

    def _notify(self, complaint: Complaint, entry: ComplaintLogEntry) -> None:
        # Notification failures never roll back a committed transition
        try:
            result = self.notifier.publish_status_change(complaint, entry)
        except Exception as e:
            logger.error(
                "Status notification failed",
                extra={"extra_fields": {"complaint_id": complaint.id, "error": str(e)}},
                exc_info=True
            )
            return

        if not result.success:
            logger.warning(
                "Status notification not delivered",
                extra={
                    "extra_fields": {
                        "complaint_id": complaint.id,
                        "to_status": entry.to_status.value,
                        "error": result.error
                    }
                }
            )
