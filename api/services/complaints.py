# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Complaint service facade exposed to the transport layer.
"""

import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from pydantic import ValidationError

from domain.errors import ComplaintNotFoundError, ComplaintValidationError
from models.entities import ActorContext
from models.enums import ValidationErrorKind
from models.requests import SubmitComplaintRequest, TransitionComplaintRequest
from models.responses import ComplaintView, ComplaintLogView, SubmissionResult
from .audit import AuditLogService
from .catalog import CatalogService
from .retry import retry_store_operation
from .state_machine import ComplaintStateMachine
from .store import ComplaintStore
from .validator import ComplaintValidator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _malformed(error: ValidationError) -> ComplaintValidationError:
    messages = [f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in error.errors()]
    return ComplaintValidationError(ValidationErrorKind.MALFORMED, "Request is malformed", messages)


class ComplaintService:
    """Entry point for complaint submission, lookup, transitions and audit trails."""

    def __init__(
        self,
        store: ComplaintStore,
        catalog: CatalogService,
        validator: ComplaintValidator,
        state_machine: ComplaintStateMachine,
        audit: AuditLogService,
        locks=None,
        notifier=None,
        max_retries: int = 3,
        retry_delay: float = 0.2
    ):
        self.store = store
        self.catalog = catalog
        self.validator = validator
        self.state_machine = state_machine
        self.audit = audit
        self.locks = locks
        self.notifier = notifier
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def submit_complaint(
        self,
        submitter_id: Optional[str],
        type_id: Optional[str],
        description: Optional[str],
        location: Optional[Any] = None,
        actor: Optional[ActorContext] = None
    ) -> SubmissionResult:
        """
        Submit a complaint.

        Args:
            submitter_id: Submitting user ID
            type_id: Complaint type ID
            description: Free text description
            location: Optional GeoPoint or {"latitude", "longitude"} mapping
            actor: Caller identity; defaults to the submitter

        Returns:
            SubmissionResult with the new or existing complaint ID

        Raises:
            ComplaintValidationError: If the submission is rejected
        """
        try:
            request = SubmitComplaintRequest(
                submitter_id=submitter_id,
                type_id=type_id,
                description=description,
                location=location
            )
        except ValidationError as e:
            raise _malformed(e)

        return self.validator.validate(request, actor)

    def get_complaint(self, complaint_id: str) -> ComplaintView:
        """
        Get a complaint by ID.

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
        """
        with tracer.start_as_current_span("complaints.get") as span:
            span.set_attribute("complaint.id", complaint_id)

            complaint = retry_store_operation(
                lambda: self.store.get_complaint(complaint_id),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                operation_name="get_complaint"
            )
            if complaint is None:
                raise ComplaintNotFoundError(complaint_id)

            span.set_attribute("complaint.status", complaint.status.value)
            return ComplaintView.from_entity(complaint)

    def transition_complaint(
        self,
        complaint_id: str,
        to_status: Any,
        actor: ActorContext,
        note: Optional[str] = None,
        unit_id: Optional[str] = None,
        merged_into_id: Optional[str] = None
    ) -> ComplaintView:
        """
        Change the status of a complaint.

        Raises:
            ComplaintValidationError: If the request is malformed
            ComplaintNotFoundError: If the complaint does not exist
            InvalidTransitionError: If the transition is not allowed
        """
        try:
            request = TransitionComplaintRequest(
                to_status=to_status,
                note=note,
                unit_id=unit_id,
                merged_into_id=merged_into_id
            )
        except ValidationError as e:
            raise _malformed(e)

        complaint = self.state_machine.transition(
            complaint_id,
            request.to_status,
            actor,
            note=request.note,
            unit_id=request.unit_id,
            merged_into_id=request.merged_into_id
        )
        return ComplaintView.from_entity(complaint)

    def list_logs(self, complaint_id: str) -> List[ComplaintLogView]:
        """
        Audit trail of a complaint, oldest first.

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
        """
        entries = retry_store_operation(
            lambda: self.audit.list_logs(complaint_id),
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            operation_name="list_logs"
        )
        return [ComplaintLogView.from_entity(entry) for entry in entries]

    def refresh_catalog(self) -> None:
        """Drop cached catalogs after a configuration change."""
        self.catalog.invalidate()

    def health_check(self) -> Dict[str, Any]:
        """Aggregate health of the pipeline's collaborators."""
        checks: Dict[str, Any] = {}

        try:
            checks['store'] = self.store.health_check()
        except Exception as e:
            checks['store'] = {'status': 'unhealthy', 'error': str(e)}

        if self.locks is not None:
            checks['locks'] = {'status': 'healthy' if self.locks.health_check() else 'unhealthy'}

        if self.notifier is not None:
            checks['notifications'] = {'status': 'healthy' if self.notifier.health_check() else 'degraded'}

        unhealthy = [name for name, check in checks.items() if check.get('status') == 'unhealthy']
        status = 'unhealthy' if unhealthy else 'healthy'
        if status == 'healthy' and any(check.get('status') == 'degraded' for check in checks.values()):
            status = 'degraded'

        return {'status': status, 'checks': checks}
