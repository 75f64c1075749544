# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the complaint pipeline.
"""

# Base models
from .base import BaseEntity, CatalogEntity, generate_object_id, utc_now

# Enumerations
from .enums import (
    ComplaintStatus,
    LogEvent,
    ActorRole,
    ValidationErrorKind,
    OPEN_STATUSES,
    TERMINAL_STATUSES
)

# Core entities
from .entities import (
    GeoPoint,
    ComplaintType,
    MunicipalUnit,
    ModerationResult,
    Complaint,
    ComplaintLogEntry,
    ActorContext
)

# Request models
from .requests import (
    SubmitComplaintRequest,
    TransitionComplaintRequest
)

# Response models
from .responses import (
    ComplaintView,
    ComplaintLogView,
    SubmissionResult
)

__all__ = [
    # Base
    "BaseEntity",
    "CatalogEntity",
    "generate_object_id",
    "utc_now",

    # Enums
    "ComplaintStatus",
    "LogEvent",
    "ActorRole",
    "ValidationErrorKind",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",

    # Entities
    "GeoPoint",
    "ComplaintType",
    "MunicipalUnit",
    "ModerationResult",
    "Complaint",
    "ComplaintLogEntry",
    "ActorContext",

    # Requests
    "SubmitComplaintRequest",
    "TransitionComplaintRequest",

    # Responses
    "ComplaintView",
    "ComplaintLogView",
    "SubmissionResult"
]
