# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Persistence interface of the complaint pipeline and its in-memory backend.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Any

from domain.errors import (
    ComplaintNotFoundError, ConcurrencyConflictError, DuplicateFingerprintError
)
from domain.retention import entry_order, select_purgeable
from models.entities import Complaint, ComplaintLogEntry, ComplaintType, MunicipalUnit
from models.enums import ComplaintStatus

logger = logging.getLogger(__name__)


class ComplaintStore(ABC):
    """
    Persistence collaborator for complaints, their audit trail and catalogs.

    Implementations must make create_complaint, apply_transition and
    append_merge_note atomic: the complaint record and its log entry are
    written together or not at all. Transient failures surface as
    StoreUnavailableError.
    """

    @abstractmethod
    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        """Return a complaint by ID, or None."""

    @abstractmethod
    def find_open_by_fingerprint(self, fingerprint: str) -> Optional[Complaint]:
        """Return the open complaint carrying a fingerprint, or None."""

    @abstractmethod
    def create_complaint(self, complaint: Complaint, entry: ComplaintLogEntry) -> Complaint:
        """
        Insert a complaint together with its creation log entry.

        Raises:
            DuplicateFingerprintError: If an open complaint already has the fingerprint
        """

    @abstractmethod
    def apply_transition(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        expected_version: int,
        updates: Dict[str, Any],
        entry: ComplaintLogEntry
    ) -> Complaint:
        """
        Compare-and-swap a complaint update and append its log entry.

        Raises:
            ComplaintNotFoundError: If the complaint does not exist
            ConcurrencyConflictError: If status or version no longer match
        """

    @abstractmethod
    def append_merge_note(self, complaint_id: str, entry: ComplaintLogEntry) -> ComplaintLogEntry:
        """Append a duplicate merge annotation to an existing complaint."""

    @abstractmethod
    def list_logs(self, complaint_id: str) -> List[ComplaintLogEntry]:
        """Log entries of a complaint ordered by (timestamp, sequence)."""

    @abstractmethod
    def next_sequence(self, complaint_id: str) -> int:
        """Sequence number the next log entry of a complaint should carry."""

    @abstractmethod
    def purge_logs(self, cutoff: datetime) -> int:
        """Delete entries older than cutoff, keeping the newest per complaint."""

    @abstractmethod
    def list_complaint_types(self) -> List[ComplaintType]:
        """Complaint type catalog."""

    @abstractmethod
    def list_units(self) -> List[MunicipalUnit]:
        """Municipal unit catalog."""

    @abstractmethod
    def upsert_complaint_type(self, complaint_type: ComplaintType) -> None:
        """Insert or replace a complaint type."""

    @abstractmethod
    def upsert_unit(self, unit: MunicipalUnit) -> None:
        """Insert or replace a municipal unit."""

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """Report backend health."""


class InMemoryComplaintStore(ComplaintStore):
    """
    Thread-safe in-process store for local development and tests.

    All mutations happen under one re-entrant lock, which makes every unit of
    work atomic.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._complaints: Dict[str, Complaint] = {}
        self._logs: Dict[str, ComplaintLogEntry] = {}
        self._open_fingerprints: Dict[str, str] = {}
        self._complaint_types: Dict[str, ComplaintType] = {}
        self._units: Dict[str, MunicipalUnit] = {}
        logger.info("In-memory complaint store initialized")

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        with self._lock:
            return self._complaints.get(complaint_id)

    def find_open_by_fingerprint(self, fingerprint: str) -> Optional[Complaint]:
        with self._lock:
            complaint_id = self._open_fingerprints.get(fingerprint)
            if complaint_id is None:
                return None
            return self._complaints.get(complaint_id)

    def create_complaint(self, complaint: Complaint, entry: ComplaintLogEntry) -> Complaint:
        with self._lock:
            if complaint.id in self._complaints:
                raise DuplicateFingerprintError(
                    complaint.fingerprint,
                    self._open_fingerprints.get(complaint.fingerprint)
                )

            if complaint.is_open():
                existing_id = self._open_fingerprints.get(complaint.fingerprint)
                if existing_id is not None:
                    raise DuplicateFingerprintError(complaint.fingerprint, existing_id)
                self._open_fingerprints[complaint.fingerprint] = complaint.id

            self._complaints[complaint.id] = complaint
            self._logs[entry.id] = entry
            return complaint

    def apply_transition(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        expected_version: int,
        updates: Dict[str, Any],
        entry: ComplaintLogEntry
    ) -> Complaint:
        with self._lock:
            current = self._complaints.get(complaint_id)
            if current is None:
                raise ComplaintNotFoundError(complaint_id)

            if current.status != expected_status or current.version != expected_version:
                raise ConcurrencyConflictError(complaint_id)

            # model_copy skips validation, so run it again over the merged data
            updated = Complaint.model_validate({**current.model_dump(), **updates})

            if current.is_open() and not updated.is_open():
                self._open_fingerprints.pop(current.fingerprint, None)

            self._complaints[complaint_id] = updated
            self._logs[entry.id] = entry
            return updated

    def append_merge_note(self, complaint_id: str, entry: ComplaintLogEntry) -> ComplaintLogEntry:
        with self._lock:
            if complaint_id not in self._complaints:
                raise ComplaintNotFoundError(complaint_id)
            self._logs[entry.id] = entry
            return entry

    def list_logs(self, complaint_id: str) -> List[ComplaintLogEntry]:
        with self._lock:
            entries = [entry for entry in self._logs.values() if entry.complaint_id == complaint_id]
        return sorted(entries, key=entry_order)

    def next_sequence(self, complaint_id: str) -> int:
        with self._lock:
            sequences = [
                entry.sequence for entry in self._logs.values()
                if entry.complaint_id == complaint_id
            ]
        return max(sequences, default=0) + 1

    def purge_logs(self, cutoff: datetime) -> int:
        with self._lock:
            purgeable = select_purgeable(list(self._logs.values()), cutoff)
            for entry_id in purgeable:
                del self._logs[entry_id]
            return len(purgeable)

    def list_complaint_types(self) -> List[ComplaintType]:
        with self._lock:
            return sorted(self._complaint_types.values(), key=lambda t: t.id)

    def list_units(self) -> List[MunicipalUnit]:
        with self._lock:
            return sorted(self._units.values(), key=lambda u: u.id)

    def upsert_complaint_type(self, complaint_type: ComplaintType) -> None:
        with self._lock:
            self._complaint_types[complaint_type.id] = complaint_type

    def upsert_unit(self, unit: MunicipalUnit) -> None:
        with self._lock:
            self._units[unit.id] = unit

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'status': 'healthy',
                'backend': 'memory',
                'complaints': len(self._complaints),
                'log_entries': len(self._logs)
            }
