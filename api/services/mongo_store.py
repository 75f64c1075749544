# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB implementation of the complaint store.

Create, transition and merge units run inside multi-document transactions,
so the deployment must be a replica set (or sharded cluster).
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any, Callable, TypeVar

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError
from pydantic.alias_generators import to_camel

from domain.errors import (
    ComplaintNotFoundError, ConcurrencyConflictError, DuplicateFingerprintError,
    StoreUnavailableError
)
from models.entities import Complaint, ComplaintLogEntry, ComplaintType, MunicipalUnit
from models.enums import ComplaintStatus, OPEN_STATUSES
from .mongodb import (
    MongoDBService, COMPLAINTS_COLLECTION, COMPLAINT_LOGS_COLLECTION,
    COMPLAINT_TYPES_COLLECTION, MUNICIPAL_UNITS_COLLECTION
)
from .store import ComplaintStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")


def _is_transient(error: PyMongoError) -> bool:
    if isinstance(error, ConnectionFailure):
        return True
    return any(error.has_error_label(label) for label in TRANSIENT_LABELS)


class MongoComplaintStore(ComplaintStore):
    """Complaint store backed by MongoDB collections."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        logger.info("MongoDB complaint store initialized")

    @property
    def complaints(self):
        return self.mongo_service.get_collection(COMPLAINTS_COLLECTION)

    @property
    def logs(self):
        return self.mongo_service.get_collection(COMPLAINT_LOGS_COLLECTION)

    def _run(self, operation_name: str, operation: Callable[[], T]) -> T:
        """Run a driver call, mapping transient driver failures to StoreUnavailableError."""
        try:
            return operation()
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            if _is_transient(e):
                logger.warning(
                    "MongoDB operation failed",
                    extra={"extra_fields": {"operation": operation_name, "error": str(e)}}
                )
                raise StoreUnavailableError(f"MongoDB unavailable during {operation_name}: {e}")
            raise

    def _in_transaction(self, operation_name: str, callback: Callable[[Any], T]) -> T:
        def run():
            with self.mongo_service.client.start_session() as session:
                return session.with_transaction(callback)

        return self._run(operation_name, run)

    # Complaints

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        document = self._run("get_complaint", lambda: self.complaints.find_one({"_id": complaint_id}))
        return Complaint.from_document(document) if document else None

    def find_open_by_fingerprint(self, fingerprint: str) -> Optional[Complaint]:
        document = self._run(
            "find_open_by_fingerprint",
            lambda: self.complaints.find_one({"fingerprint": fingerprint, "isOpen": True})
        )
        return Complaint.from_document(document) if document else None

    def create_complaint(self, complaint: Complaint, entry: ComplaintLogEntry) -> Complaint:
        def callback(session):
            self.complaints.insert_one(complaint.to_document(), session=session)
            self.logs.insert_one(entry.to_document(), session=session)

        try:
            self._in_transaction("create_complaint", callback)
        except DuplicateKeyError:
            existing = self.find_open_by_fingerprint(complaint.fingerprint)
            raise DuplicateFingerprintError(
                complaint.fingerprint,
                existing.id if existing else None
            )

        return complaint

    def apply_transition(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        expected_version: int,
        updates: Dict[str, Any],
        entry: ComplaintLogEntry
    ) -> Complaint:
        changes = {to_camel(key): value for key, value in updates.items()}
        if "status" in updates:
            changes["isOpen"] = ComplaintStatus(updates["status"]) in OPEN_STATUSES

        def callback(session):
            document = self.complaints.find_one_and_update(
                {"_id": complaint_id, "status": ComplaintStatus(expected_status).value, "version": expected_version},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
                session=session
            )
            if document is None:
                return None
            self.logs.insert_one(entry.to_document(), session=session)
            return document

        document = self._in_transaction("apply_transition", callback)

        if document is None:
            if self.get_complaint(complaint_id) is None:
                raise ComplaintNotFoundError(complaint_id)
            raise ConcurrencyConflictError(complaint_id)

        return Complaint.from_document(document)

    def append_merge_note(self, complaint_id: str, entry: ComplaintLogEntry) -> ComplaintLogEntry:
        def callback(session):
            if self.complaints.find_one({"_id": complaint_id}, {"_id": 1}, session=session) is None:
                return False
            self.logs.insert_one(entry.to_document(), session=session)
            return True

        if not self._in_transaction("append_merge_note", callback):
            raise ComplaintNotFoundError(complaint_id)
        return entry

    # Audit log

    def list_logs(self, complaint_id: str) -> List[ComplaintLogEntry]:
        documents = self._run(
            "list_logs",
            lambda: list(self.logs.find({"complaintId": complaint_id}).sort(
                [("timestamp", ASCENDING), ("sequence", ASCENDING)]
            ))
        )
        return [ComplaintLogEntry.from_document(document) for document in documents]

    def next_sequence(self, complaint_id: str) -> int:
        document = self._run(
            "next_sequence",
            lambda: self.logs.find_one(
                {"complaintId": complaint_id},
                {"sequence": 1},
                sort=[("sequence", DESCENDING)]
            )
        )
        return (document["sequence"] if document else 0) + 1

    def purge_logs(self, cutoff: datetime) -> int:
        def run():
            # Newest entry of every complaint that has entries past the cutoff
            pipeline = [
                {"$match": {"complaintId": {"$in": self.logs.distinct("complaintId", {"timestamp": {"$lt": cutoff}})}}},
                {"$sort": {"timestamp": -1, "sequence": -1}},
                {"$group": {"_id": "$complaintId", "newestId": {"$first": "$_id"}}},
            ]
            keep = [group["newestId"] for group in self.logs.aggregate(pipeline)]
            result = self.logs.delete_many({"timestamp": {"$lt": cutoff}, "_id": {"$nin": keep}})
            return result.deleted_count

        return self._run("purge_logs", run)

    # Catalogs

    def list_complaint_types(self) -> List[ComplaintType]:
        documents = self._run(
            "list_complaint_types",
            lambda: list(self.mongo_service.get_collection(COMPLAINT_TYPES_COLLECTION).find().sort("_id", ASCENDING))
        )
        return [ComplaintType.from_document(document) for document in documents]

    def list_units(self) -> List[MunicipalUnit]:
        documents = self._run(
            "list_units",
            lambda: list(self.mongo_service.get_collection(MUNICIPAL_UNITS_COLLECTION).find().sort("_id", ASCENDING))
        )
        return [MunicipalUnit.from_document(document) for document in documents]

    def upsert_complaint_type(self, complaint_type: ComplaintType) -> None:
        document = complaint_type.to_document()
        self._run(
            "upsert_complaint_type",
            lambda: self.mongo_service.get_collection(COMPLAINT_TYPES_COLLECTION).replace_one(
                {"_id": document["_id"]}, document, upsert=True
            )
        )

    def upsert_unit(self, unit: MunicipalUnit) -> None:
        document = unit.to_document()
        self._run(
            "upsert_unit",
            lambda: self.mongo_service.get_collection(MUNICIPAL_UNITS_COLLECTION).replace_one(
                {"_id": document["_id"]}, document, upsert=True
            )
        )

    def health_check(self) -> Dict[str, Any]:
        health = self.mongo_service.health_check()
        health['backend'] = 'mongodb'
        return health
