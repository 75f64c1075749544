# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit trail service for complaint lifecycle events with OpenTelemetry correlation.

Log entries are written by the store inside the same unit of work as the
complaint change; this service mirrors committed entries into the
application log and serves the trail back to callers.
"""

import logging
from typing import List
from opentelemetry import trace

from domain.complaints import validate_status_path, ValidationResult
from domain.errors import ComplaintNotFoundError
from models.entities import ComplaintLogEntry
from .store import ComplaintStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditLogService:
    """Read access and log mirroring for the complaint audit trail."""

    def __init__(self, store: ComplaintStore):
        """Initialize audit service with the store dependency."""
        self.store = store
        logger.info("Audit log service initialized")

    def record(self, entry: ComplaintLogEntry) -> None:
        """
        Mirror a committed log entry as a structured log line.

        Args:
            entry: Entry already persisted by the store
        """
        with tracer.start_as_current_span("audit.record") as span:
            span_context = span.get_span_context()

            span.set_attributes({
                "complaint.id": entry.complaint_id,
                "audit.event": entry.event.value,
                "audit.to_status": entry.to_status.value,
                "audit.actor_id": entry.actor_id,
                "audit.sequence": entry.sequence
            })

            fields = {
                "log_entry_id": entry.id,
                "complaint_id": entry.complaint_id,
                "event": entry.event.value,
                "from_status": entry.from_status.value if entry.from_status else None,
                "to_status": entry.to_status.value,
                "actor_id": entry.actor_id,
                "actor_role": entry.actor_role.value if entry.actor_role else None,
                "sequence": entry.sequence,
                "audit_category": "complaint_lifecycle"
            }
            if span_context.is_valid:
                fields["trace_id"] = format(span_context.trace_id, "032x")

            logger.info("Audit trail entry created", extra={"extra_fields": fields})

    def list_logs(self, complaint_id: str) -> List[ComplaintLogEntry]:
        """
        Get the audit trail of a complaint, oldest first.

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
        """
        with tracer.start_as_current_span("audit.list_logs") as span:
            span.set_attribute("complaint.id", complaint_id)
            try:
                if self.store.get_complaint(complaint_id) is None:
                    raise ComplaintNotFoundError(complaint_id)

                entries = self.store.list_logs(complaint_id)
                span.set_attribute("audit.entries", len(entries))

                logger.debug(f"Retrieved {len(entries)} log entries for complaint {complaint_id}")
                return entries

            except ComplaintNotFoundError:
                raise
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to list audit logs",
                    extra={"extra_fields": {"complaint_id": complaint_id, "error": str(e)}},
                    exc_info=True
                )
                raise

    def verify_trail(self, complaint_id: str) -> ValidationResult:
        """Check that the retained trail of a complaint follows the transition table."""
        return validate_status_path(self.list_logs(complaint_id), complete=False)
