# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models returned by the complaint service.
"""

from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime

from .entities import Complaint, ComplaintLogEntry, GeoPoint
from .enums import ComplaintStatus, LogEvent, ActorRole


class ComplaintView(BaseModel):
    """Read model of a complaint."""

    id: str = Field(..., description="Complaint ID")
    submitter_id: str = Field(..., description="Submitting user ID")
    type_id: str = Field(..., description="Complaint type ID")
    description: str = Field(..., description="Complaint description")
    location: Optional[GeoPoint] = Field(None, description="Reported location")
    status: ComplaintStatus = Field(..., description="Workflow status")
    is_open: bool = Field(..., description="Whether the complaint is still open")
    assigned_unit_id: Optional[str] = Field(None, description="Responsible municipal unit")
    merged_into_id: Optional[str] = Field(None, description="Surviving complaint if merged")
    resolution_note: Optional[str] = Field(None, description="Resolution summary")
    has_profanity: bool = Field(..., description="Moderation profanity flag")
    moderation_severity: float = Field(..., description="Moderation severity")
    sentiment: float = Field(..., description="Sentiment score")
    needs_review: bool = Field(..., description="Marked for manual review")
    fingerprint: str = Field(..., description="Deduplication fingerprint")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @classmethod
    def from_entity(cls, complaint: Complaint) -> "ComplaintView":
        return cls(
            id=complaint.id,
            submitter_id=complaint.submitter_id,
            type_id=complaint.type_id,
            description=complaint.description,
            location=complaint.location,
            status=complaint.status,
            is_open=complaint.is_open(),
            assigned_unit_id=complaint.assigned_unit_id,
            merged_into_id=complaint.merged_into_id,
            resolution_note=complaint.resolution_note,
            has_profanity=complaint.has_profanity,
            moderation_severity=complaint.moderation_severity,
            sentiment=complaint.sentiment,
            needs_review=complaint.needs_review,
            fingerprint=complaint.fingerprint,
            created_at=complaint.created_at,
            updated_at=complaint.updated_at,
        )


class ComplaintLogView(BaseModel):
    """Read model of an audit log entry."""

    id: str = Field(..., description="Log entry ID")
    complaint_id: str = Field(..., description="Complaint ID")
    event: LogEvent = Field(..., description="Lifecycle event kind")
    from_status: Optional[ComplaintStatus] = Field(None, description="Status before the event")
    to_status: ComplaintStatus = Field(..., description="Status after the event")
    actor_id: str = Field(..., description="Actor ID")
    actor_role: Optional[ActorRole] = Field(None, description="Actor role")
    timestamp: datetime = Field(..., description="Event timestamp")
    note: Optional[str] = Field(None, description="Note")
    previous_unit_id: Optional[str] = Field(None, description="Unit the complaint was reassigned from")

    @classmethod
    def from_entity(cls, entry: ComplaintLogEntry) -> "ComplaintLogView":
        return cls(**entry.model_dump(exclude={"sequence", "schema_version"}))


class SubmissionResult(BaseModel):
    """Outcome of a complaint submission."""

    complaint_id: str = Field(..., description="Created or existing complaint ID")
    created: bool = Field(..., description="Whether a new complaint was created")
    merged: bool = Field(default=False, description="Whether the submission was merged into an open complaint")
    needs_review: bool = Field(default=False, description="Whether the complaint is marked for manual review")
    status: ComplaintStatus = Field(..., description="Status of the complaint the caller should track")
    assigned_unit_id: Optional[str] = Field(None, description="Responsible municipal unit")
