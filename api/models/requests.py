# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models accepted by the complaint service.

Submission fields are deliberately optional: missing or blank values are
reported by the validator as a malformed submission instead of failing
model construction.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from .entities import GeoPoint
from .enums import ComplaintStatus


class SubmitComplaintRequest(BaseModel):
    """Raw complaint submission as received from the transport layer."""

    submitter_id: Optional[str] = Field(None, description="Submitting user ID")
    type_id: Optional[str] = Field(None, description="Complaint type ID")
    description: Optional[str] = Field(None, description="Free text description")
    location: Optional[GeoPoint] = Field(None, description="Reported location")

    @field_validator('submitter_id', 'type_id')
    @classmethod
    def strip_identifiers(cls, v):
        """Normalize identifiers."""
        return v.strip() if isinstance(v, str) else v


class TransitionComplaintRequest(BaseModel):
    """Request model for a status transition."""

    to_status: ComplaintStatus = Field(..., description="Target status")
    note: Optional[str] = Field(None, max_length=2000, description="Optional note for the audit log")
    unit_id: Optional[str] = Field(None, description="Unit to assign when moving to assigned")
    merged_into_id: Optional[str] = Field(None, description="Surviving complaint when moving to merged")

    @field_validator('note')
    @classmethod
    def normalize_note(cls, v):
        """Blank notes are treated as absent."""
        if v is None or not v.strip():
            return None
        return v.strip()
