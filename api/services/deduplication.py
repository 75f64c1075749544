# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Deduplication index over open complaints.

Lookups go to the store, which also enforces one open complaint per
fingerprint. `reserve` adds an exclusive section keyed by fingerprint so
concurrent submissions of the same issue queue up instead of racing on the
store constraint.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from domain.deduplication import (
    compute_fingerprint, DEFAULT_BUCKET_HOURS, DEFAULT_GEOCELL_PRECISION
)
from domain.errors import DuplicateFingerprintError
from models.entities import GeoPoint
from .store import ComplaintStore

logger = logging.getLogger(__name__)


class DeduplicationIndex:
    """Fingerprint lookup and registration backed by the complaint store."""

    def __init__(
        self,
        store: ComplaintStore,
        locks,
        bucket_hours: int = DEFAULT_BUCKET_HOURS,
        geocell_precision: int = DEFAULT_GEOCELL_PRECISION
    ):
        self.store = store
        self.locks = locks
        self.bucket_hours = bucket_hours
        self.geocell_precision = geocell_precision

    def fingerprint(
        self,
        submitter_id: str,
        type_id: str,
        description: str,
        submitted_at: datetime,
        location: Optional[GeoPoint] = None
    ) -> str:
        return compute_fingerprint(
            submitter_id, type_id, description, submitted_at,
            location=location,
            bucket_hours=self.bucket_hours,
            geocell_precision=self.geocell_precision
        )

    @contextmanager
    def reserve(self, fingerprint: str) -> Generator[None, None, None]:
        """Exclusive section spanning lookup and creation for one fingerprint."""
        with self.locks.hold(f"fingerprint:{fingerprint}"):
            yield

    def find_open(self, fingerprint: str) -> Optional[str]:
        """ID of the open complaint holding a fingerprint, if any."""
        complaint = self.store.find_open_by_fingerprint(fingerprint)
        if complaint is None or not complaint.is_open():
            return None
        return complaint.id

    def register(self, fingerprint: str, complaint_id: str) -> None:
        """
        Confirm that a newly created complaint owns its fingerprint.

        Creation writes the fingerprint together with the complaint, so this
        only verifies the store's view.

        Raises:
            DuplicateFingerprintError: If another open complaint holds the fingerprint
        """
        owner = self.find_open(fingerprint)
        if owner is not None and owner != complaint_id:
            raise DuplicateFingerprintError(fingerprint, owner)

        logger.debug(
            "Fingerprint registered",
            extra={"extra_fields": {"fingerprint": fingerprint, "complaint_id": complaint_id}}
        )
