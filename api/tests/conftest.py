# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from domain.complaints import ModerationPolicy
from domain.moderation import ModerationFilter
from models.entities import ActorContext, ComplaintType, MunicipalUnit
from models.enums import ActorRole, ComplaintStatus
from services.audit import AuditLogService
from services.catalog import CatalogService
from services.complaints import ComplaintService
from services.deduplication import DeduplicationIndex
from services.locks import LocalLockManager
from services.notifications import PublishResult
from services.state_machine import ComplaintStateMachine
from services.store import InMemoryComplaintStore
from services.validator import ComplaintValidator

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'sehir_asistani_test'


class FixedClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock fixed at a mid-day UTC instant."""
    return FixedClock(datetime(2024, 3, 12, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def complaint_types():
    """Complaint type catalog used across tests."""
    return [
        ComplaintType(id="pothole", name="Pothole", severity_weight=1.0),
        ComplaintType(id="water_leak", name="Water leak", severity_weight=1.5),
        ComplaintType(id="noise", name="Noise"),
        ComplaintType(id="graffiti", name="Graffiti", is_active=False),
    ]


@pytest.fixture
def municipal_units():
    """Municipal unit catalog; nothing accepts the noise type."""
    return [
        MunicipalUnit(id="roads", name="Road Maintenance", accepted_type_ids=["pothole"], priority=10),
        MunicipalUnit(id="roads-north", name="North Roads Depot", accepted_type_ids=["pothole"], priority=20),
        MunicipalUnit(id="water", name="Water Authority", accepted_type_ids=["water_leak"], priority=10),
        MunicipalUnit(id="parks", name="Parks", accepted_type_ids=["graffiti", "noise"], is_active=False),
    ]


@pytest.fixture
def store(complaint_types, municipal_units):
    """In-memory store seeded with the catalogs."""
    store = InMemoryComplaintStore()
    for complaint_type in complaint_types:
        store.upsert_complaint_type(complaint_type)
    for unit in municipal_units:
        store.upsert_unit(unit)
    return store


@pytest.fixture
def locks():
    return LocalLockManager(wait_seconds=1.0)


@pytest.fixture
def catalog(store):
    return CatalogService(store, ttl_seconds=300)


@pytest.fixture
def audit(store):
    return AuditLogService(store)


@pytest.fixture
def notifier():
    """Notification publisher double that always succeeds."""
    publisher = Mock()
    publisher.publish_status_change.return_value = PublishResult(
        success=True,
        correlation_id="test-correlation",
        exchange="complaints.events",
        routing_key="complaint.resolved"
    )
    publisher.health_check.return_value = True
    return publisher


@pytest.fixture
def state_machine(store, catalog, locks, audit, notifier, clock):
    return ComplaintStateMachine(
        store=store,
        catalog=catalog,
        locks=locks,
        audit=audit,
        notifier=notifier,
        max_retries=2,
        retry_delay=0,
        clock=clock
    )


@pytest.fixture
def validator(store, catalog, locks, state_machine, clock):
    return ComplaintValidator(
        moderation_filter=ModerationFilter(),
        policy=ModerationPolicy(flag_threshold=1.0, reject_threshold=3.0),
        catalog=catalog,
        dedup=DeduplicationIndex(store, locks),
        state_machine=state_machine,
        max_retries=2,
        retry_delay=0,
        clock=clock
    )


@pytest.fixture
def complaint_service(store, catalog, validator, state_machine, audit, locks, notifier):
    """Fully wired complaint service over the in-memory store."""
    return ComplaintService(
        store=store,
        catalog=catalog,
        validator=validator,
        state_machine=state_machine,
        audit=audit,
        locks=locks,
        notifier=notifier,
        max_retries=2,
        retry_delay=0
    )


@pytest.fixture
def operator():
    """Municipal operator actor."""
    return ActorContext(actor_id="operator-1", role=ActorRole.OPERATOR, permissions=["complaint:transition"])


@pytest.fixture
def citizen():
    return ActorContext(actor_id="citizen-1", role=ActorRole.CITIZEN)


@pytest.fixture
def submitted_complaint(complaint_service):
    """ID of a freshly submitted pothole complaint."""
    result = complaint_service.submit_complaint(
        "citizen-1", "pothole", "Deep pothole on Atatürk Caddesi near the bakery"
    )
    return result.complaint_id


@pytest.fixture
def advance_to(complaint_service, operator):
    """Drive a complaint along the happy path up to a status."""
    path = [
        ComplaintStatus.VALIDATED,
        ComplaintStatus.ASSIGNED,
        ComplaintStatus.IN_PROGRESS,
        ComplaintStatus.RESOLVED,
    ]

    def _advance(complaint_id: str, target: ComplaintStatus):
        view = complaint_service.get_complaint(complaint_id)
        for status in path:
            view = complaint_service.transition_complaint(complaint_id, status, operator)
            if status == target:
                break
        return view

    return _advance
