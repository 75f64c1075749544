# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the complaint pipeline.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic.alias_generators import to_camel
from .base import BaseEntity, CatalogEntity, generate_object_id, utc_now
from .enums import ComplaintStatus, LogEvent, ActorRole, OPEN_STATUSES


class GeoPoint(BaseModel):
    """Geographic location of the reported issue."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")


class ComplaintType(CatalogEntity):
    """Complaint type catalog entry."""

    severity_weight: float = Field(default=1.0, ge=0, description="Default severity weight")


class MunicipalUnit(CatalogEntity):
    """Municipal unit responsible for a set of complaint types."""

    accepted_type_ids: List[str] = Field(default_factory=list, description="Complaint types handled")
    priority: int = Field(default=100, description="Routing priority, lower wins")
    contact_email: Optional[str] = Field(None, description="Unit contact address")

    def accepts(self, type_id: str) -> bool:
        """Check if the unit is active and accepts the complaint type."""
        return self.is_active and type_id in self.accepted_type_ids


class ModerationResult(BaseModel):
    """Signal reported by the moderation filter."""

    model_config = ConfigDict(frozen=True)

    has_profanity: bool = Field(..., description="Whether any profanity term matched")
    severity: float = Field(..., ge=0, description="Weighted profanity severity")
    sentiment: float = Field(..., ge=-1, le=1, description="Sentiment score in [-1, 1]")
    matched_terms: List[str] = Field(default_factory=list, description="Lexicon terms that matched")


class Complaint(BaseEntity):
    """Core complaint entity."""

    submitter_id: str = Field(..., min_length=1, frozen=True, description="User who filed the complaint")
    type_id: str = Field(..., min_length=1, frozen=True, description="Complaint type reference")
    description: str = Field(..., min_length=1, frozen=True, description="Free text description")
    location: Optional[GeoPoint] = Field(None, frozen=True, description="Reported location")
    has_profanity: bool = Field(default=False, frozen=True, description="Moderation profanity flag")
    moderation_severity: float = Field(default=0.0, ge=0, frozen=True, description="Moderation severity")
    sentiment: float = Field(default=0.0, ge=-1, le=1, frozen=True, description="Sentiment score")
    matched_terms: List[str] = Field(default_factory=list, frozen=True, description="Matched lexicon terms")
    needs_review: bool = Field(default=False, frozen=True, description="Marked for manual review")
    fingerprint: str = Field(..., min_length=1, frozen=True, description="Deduplication fingerprint")
    status: ComplaintStatus = Field(default=ComplaintStatus.SUBMITTED, description="Workflow status")
    assigned_unit_id: Optional[str] = Field(None, description="Responsible municipal unit")
    merged_into_id: Optional[str] = Field(None, description="Complaint this one was folded into")
    resolution_note: Optional[str] = Field(None, description="Resolution summary")
    version: int = Field(default=1, ge=1, description="Concurrency version, bumped on every transition")
    schema_version: int = Field(default=1, description="Schema version")

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        """Validate complaint description."""
        if not v.strip():
            raise ValueError('Complaint description cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_status_fields(self):
        """Validate status-dependent fields."""
        if self.merged_into_id and self.status != ComplaintStatus.MERGED:
            raise ValueError('merged_into_id is only allowed when status is merged')

        if self.merged_into_id and self.merged_into_id == self.id:
            raise ValueError('Complaint cannot be merged into itself')

        return self

    def is_open(self) -> bool:
        """Check if the complaint is still in a non-terminal status."""
        return self.status in OPEN_STATUSES

    def to_document(self) -> dict:
        """Serialize for storage, including the derived open flag."""
        document = super().to_document()
        document["isOpen"] = self.is_open()
        return document

    @classmethod
    def from_document(cls, document: dict):
        data = dict(document)
        data.pop("isOpen", None)
        return super().from_document(data)


class ComplaintLogEntry(BaseModel):
    """Append-only audit record of a complaint lifecycle event."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    complaint_id: str = Field(..., min_length=1, description="Complaint this entry belongs to")
    event: LogEvent = Field(default=LogEvent.TRANSITION, description="Kind of lifecycle event")
    from_status: Optional[ComplaintStatus] = Field(None, description="Status before the event")
    to_status: ComplaintStatus = Field(..., description="Status after the event")
    actor_id: str = Field(..., min_length=1, description="Actor who caused the event")
    actor_role: Optional[ActorRole] = Field(None, description="Role of the actor")
    timestamp: datetime = Field(default_factory=utc_now, description="Event timestamp")
    note: Optional[str] = Field(None, max_length=2000, description="Optional note")
    previous_unit_id: Optional[str] = Field(None, description="Unit the complaint was reassigned from")
    sequence: int = Field(default=1, ge=1, description="Per-complaint ordering counter")
    schema_version: int = Field(default=1, description="Schema version")

    @model_validator(mode='after')
    def validate_event_shape(self):
        """Validate event-dependent status fields."""
        if self.event == LogEvent.CREATED:
            if self.from_status is not None or self.to_status != ComplaintStatus.SUBMITTED:
                raise ValueError('Creation entries must move from nothing to submitted')
        elif self.event == LogEvent.TRANSITION:
            if self.from_status is None:
                raise ValueError('Transition entries require from_status')
        elif self.event == LogEvent.DUPLICATE_MERGED:
            if self.from_status != self.to_status:
                raise ValueError('Duplicate merge notes must not change status')
        return self

    def is_transition(self) -> bool:
        """Check if this entry records a status change (including creation)."""
        return self.event in (LogEvent.CREATED, LogEvent.TRANSITION)

    def to_document(self) -> dict:
        document = self.model_dump(by_alias=True)
        document["_id"] = document.pop("id")
        return document

    @classmethod
    def from_document(cls, document: dict):
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class ActorContext(BaseModel):
    """Validated identity of the caller, supplied by the identity provider."""

    actor_id: str = Field(..., min_length=1, description="Authenticated actor ID")
    role: ActorRole = Field(default=ActorRole.CITIZEN, description="Actor role")
    permissions: List[str] = Field(default_factory=list, description="Effective permissions")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    session_id: Optional[str] = Field(None, description="Session identifier")

    def has_permission(self, permission: str) -> bool:
        """Check if actor has a specific permission."""
        return permission in self.permissions

    @classmethod
    def system(cls) -> "ActorContext":
        """Actor used for events the platform raises on its own."""
        return cls(actor_id="system", role=ActorRole.SYSTEM)
