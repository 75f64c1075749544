# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Complaint intake validation.

Runs the submission checks in order (shape, type, moderation, duplicate
lookup, routing) and either merges the submission into an open complaint or
hands it to the state machine for creation.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from opentelemetry import trace

from domain.complaints import (
    ModerationDecision, ModerationPolicy, ValidatedSubmission,
    decide_moderation, validate_submission_shape, validate_type_exists
)
from domain.errors import (
    ComplaintClosedError, ComplaintValidationError, ContentTooLargeError,
    DuplicateFingerprintError, RoutingNotFoundError
)
from domain.moderation import ModerationFilter
from models.base import utc_now
from models.entities import ActorContext
from models.enums import ActorRole, ValidationErrorKind
from models.requests import SubmitComplaintRequest
from models.responses import SubmissionResult
from .catalog import CatalogService
from .deduplication import DeduplicationIndex
from .retry import retry_store_operation
from .state_machine import ComplaintStateMachine

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ComplaintValidator:
    """Validates submissions and turns them into created or merged complaints."""

    def __init__(
        self,
        moderation_filter: ModerationFilter,
        policy: ModerationPolicy,
        catalog: CatalogService,
        dedup: DeduplicationIndex,
        state_machine: ComplaintStateMachine,
        max_retries: int = 3,
        retry_delay: float = 0.2,
        clock: Callable[[], datetime] = utc_now
    ):
        self.moderation_filter = moderation_filter
        self.policy = policy
        self.catalog = catalog
        self.dedup = dedup
        self.state_machine = state_machine
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.clock = clock

    def validate(self, request: SubmitComplaintRequest, actor: Optional[ActorContext] = None) -> SubmissionResult:
        """
        Validate a submission and create or merge the complaint.

        Args:
            request: Raw submission
            actor: Caller identity; defaults to the submitter as a citizen

        Returns:
            SubmissionResult describing the created or existing complaint

        Raises:
            ComplaintValidationError: If the submission is rejected
        """
        with tracer.start_as_current_span("validator.validate") as span:
            try:
                submission = self._check(request)

                if actor is None:
                    actor = ActorContext(actor_id=submission.submitter_id, role=ActorRole.CITIZEN)

                span.set_attributes({
                    "complaint.type_id": submission.type_id,
                    "moderation.severity": submission.moderation.severity,
                    "moderation.needs_review": submission.needs_review
                })

                result = self._create_or_merge(submission, actor)

                span.set_attributes({
                    "complaint.id": result.complaint_id,
                    "complaint.created": result.created,
                    "complaint.merged": result.merged
                })
                return result

            except ComplaintValidationError as e:
                span.set_attribute("validation.kind", e.kind.value)
                logger.info(
                    "Complaint submission rejected",
                    extra={
                        "extra_fields": {
                            "kind": e.kind.value,
                            "reason": e.message,
                            "type_id": request.type_id
                        }
                    }
                )
                raise
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def _check(self, request: SubmitComplaintRequest) -> ValidatedSubmission:
        shape = validate_submission_shape(request)
        if not shape.is_valid:
            raise ComplaintValidationError(
                ValidationErrorKind.MALFORMED,
                "Complaint submission is malformed",
                shape.errors
            )

        type_check = validate_type_exists(request.type_id, self.catalog.snapshot().complaint_types)
        if not type_check.is_valid:
            raise ComplaintValidationError(
                ValidationErrorKind.UNKNOWN_TYPE,
                f"Unknown complaint type: {request.type_id}",
                type_check.errors
            )

        description = request.description.strip()
        try:
            moderation = self.moderation_filter.screen(description)
        except ContentTooLargeError as e:
            raise ComplaintValidationError(ValidationErrorKind.CONTENT_TOO_LARGE, e.message, [e.message])

        decision = decide_moderation(moderation, self.policy)
        if decision == ModerationDecision.REJECT:
            raise ComplaintValidationError(
                ValidationErrorKind.PROFANITY_REJECTED,
                "Complaint rejected by content moderation",
                [f"Moderation severity {moderation.severity} exceeds {self.policy.reject_threshold}"]
            )

        submitted_at = self.clock()
        fingerprint = self.dedup.fingerprint(
            request.submitter_id, request.type_id, description, submitted_at, request.location
        )

        return ValidatedSubmission(
            submitter_id=request.submitter_id,
            type_id=request.type_id,
            description=description,
            moderation=moderation,
            fingerprint=fingerprint,
            needs_review=decision == ModerationDecision.FLAG,
            submitted_at=submitted_at,
            location=request.location
        )

    def _create_or_merge(self, submission: ValidatedSubmission, actor: ActorContext) -> SubmissionResult:
        with self.dedup.reserve(submission.fingerprint):
            existing_id = retry_store_operation(
                lambda: self.dedup.find_open(submission.fingerprint),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                operation_name="find_open"
            )
            if existing_id is not None:
                try:
                    return self._merge(existing_id, submission, actor)
                except ComplaintClosedError as e:
                    # Closed between lookup and annotation; the fingerprint is free again
                    logger.info(
                        "Duplicate target closed before merge, creating a new complaint",
                        extra={"extra_fields": {"complaint_id": existing_id, "status": e.status.value}}
                    )

            try:
                complaint = self.state_machine.create(submission, actor)
            except RoutingNotFoundError as e:
                raise ComplaintValidationError(ValidationErrorKind.ROUTING_NOT_FOUND, e.message, [e.message])
            except DuplicateFingerprintError as e:
                # Lost a race against a process not sharing this lock
                existing_id = e.existing_id or self.dedup.find_open(submission.fingerprint)
                if existing_id is None:
                    raise
                return self._merge(existing_id, submission, actor)

            self.dedup.register(submission.fingerprint, complaint.id)

        return SubmissionResult(
            complaint_id=complaint.id,
            created=True,
            merged=False,
            needs_review=complaint.needs_review,
            status=complaint.status,
            assigned_unit_id=complaint.assigned_unit_id
        )

    def _merge(self, existing_id: str, submission: ValidatedSubmission, actor: ActorContext) -> SubmissionResult:
        existing = self.state_machine.annotate_duplicate(existing_id, actor, submission.submitter_id)

        logger.info(
            "Duplicate submission merged",
            extra={
                "extra_fields": {
                    "complaint_id": existing_id,
                    "fingerprint": submission.fingerprint
                }
            }
        )

        return SubmissionResult(
            complaint_id=existing.id,
            created=False,
            merged=True,
            needs_review=existing.needs_review,
            status=existing.status,
            assigned_unit_id=existing.assigned_unit_id
        )
