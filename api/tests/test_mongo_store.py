# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the MongoDB complaint store against mocked collections.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, MagicMock
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure, PyMongoError

from domain.complaints import build_creation_entry
from domain.errors import (
    ComplaintNotFoundError, ConcurrencyConflictError, DuplicateFingerprintError,
    StoreUnavailableError
)
from models.entities import ActorContext, Complaint, ComplaintLogEntry, MunicipalUnit
from models.enums import ComplaintStatus
from services.mongo_store import MongoComplaintStore


NOW = datetime(2024, 3, 12, 10, 30, tzinfo=timezone.utc)


def make_complaint(**overrides):
    data = {
        "submitter_id": "citizen-1",
        "type_id": "pothole",
        "description": "Pothole on main street",
        "fingerprint": "fp-1",
        "assigned_unit_id": "roads",
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Complaint(**data)


class TestMongoComplaintStore:
    """Test document mapping, transactions and error translation."""

    def setup_method(self):
        self.collections = {
            "complaints": Mock(),
            "complaint_logs": Mock(),
            "complaint_types": Mock(),
            "municipal_units": Mock(),
        }
        self.session = Mock()
        self.session.with_transaction.side_effect = lambda callback: callback(self.session)

        session_context = MagicMock()
        session_context.__enter__.return_value = self.session

        self.mongo_service = Mock()
        self.mongo_service.get_collection.side_effect = lambda name: self.collections[name]
        self.mongo_service.client.start_session.return_value = session_context

        self.store = MongoComplaintStore(self.mongo_service)
        self.complaints = self.collections["complaints"]
        self.logs = self.collections["complaint_logs"]

    def test_get_complaint(self):
        complaint = make_complaint()
        self.complaints.find_one.return_value = complaint.to_document()

        assert self.store.get_complaint(complaint.id) == complaint
        self.complaints.find_one.assert_called_once_with({"_id": complaint.id})

    def test_get_missing_complaint(self):
        self.complaints.find_one.return_value = None
        assert self.store.get_complaint("missing") is None

    def test_find_open_by_fingerprint_filters_open(self):
        self.complaints.find_one.return_value = None

        self.store.find_open_by_fingerprint("fp-1")

        self.complaints.find_one.assert_called_once_with({"fingerprint": "fp-1", "isOpen": True})

    def test_create_writes_complaint_and_entry_in_transaction(self):
        complaint = make_complaint()
        entry = build_creation_entry(complaint, ActorContext(actor_id="citizen-1"), NOW)

        self.store.create_complaint(complaint, entry)

        document = self.complaints.insert_one.call_args[0][0]
        assert document["_id"] == complaint.id
        assert document["isOpen"] is True
        assert self.complaints.insert_one.call_args[1]["session"] is self.session

        log_document = self.logs.insert_one.call_args[0][0]
        assert log_document["_id"] == entry.id
        assert log_document["complaintId"] == complaint.id
        assert self.logs.insert_one.call_args[1]["session"] is self.session

    def test_create_duplicate_fingerprint(self):
        existing = make_complaint()
        complaint = make_complaint()
        entry = build_creation_entry(complaint, ActorContext(actor_id="citizen-1"), NOW)
        self.complaints.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")
        self.complaints.find_one.return_value = existing.to_document()

        with pytest.raises(DuplicateFingerprintError) as exc_info:
            self.store.create_complaint(complaint, entry)

        assert exc_info.value.existing_id == existing.id
        self.logs.insert_one.assert_not_called()

    def test_apply_transition_compare_and_swap(self):
        complaint = make_complaint()
        resolved = make_complaint(id=complaint.id, status=ComplaintStatus.RESOLVED, version=5)
        self.complaints.find_one_and_update.return_value = resolved.to_document()
        entry = ComplaintLogEntry(
            complaint_id=complaint.id,
            from_status=ComplaintStatus.IN_PROGRESS,
            to_status=ComplaintStatus.RESOLVED,
            actor_id="operator-1",
            sequence=5
        )

        result = self.store.apply_transition(
            complaint.id,
            ComplaintStatus.IN_PROGRESS,
            4,
            {"status": ComplaintStatus.RESOLVED, "updated_at": NOW, "version": 5, "resolution_note": "done"},
            entry
        )

        assert result.status == ComplaintStatus.RESOLVED
        filter_document, update = self.complaints.find_one_and_update.call_args[0]
        assert filter_document == {"_id": complaint.id, "status": "in_progress", "version": 4}
        assert update["$set"]["resolutionNote"] == "done"
        assert update["$set"]["updatedAt"] == NOW
        assert update["$set"]["isOpen"] is False
        self.logs.insert_one.assert_called_once()

    def test_apply_transition_conflict(self):
        complaint = make_complaint()
        self.complaints.find_one_and_update.return_value = None
        self.complaints.find_one.return_value = complaint.to_document()
        entry = ComplaintLogEntry(
            complaint_id=complaint.id,
            from_status=ComplaintStatus.SUBMITTED,
            to_status=ComplaintStatus.VALIDATED,
            actor_id="operator-1"
        )

        with pytest.raises(ConcurrencyConflictError):
            self.store.apply_transition(complaint.id, ComplaintStatus.SUBMITTED, 1, {"version": 2}, entry)

        self.logs.insert_one.assert_not_called()

    def test_apply_transition_missing(self):
        self.complaints.find_one_and_update.return_value = None
        self.complaints.find_one.return_value = None
        entry = ComplaintLogEntry(
            complaint_id="missing",
            from_status=ComplaintStatus.SUBMITTED,
            to_status=ComplaintStatus.VALIDATED,
            actor_id="operator-1"
        )

        with pytest.raises(ComplaintNotFoundError):
            self.store.apply_transition("missing", ComplaintStatus.SUBMITTED, 1, {"version": 2}, entry)

    def test_append_merge_note_missing_complaint(self):
        self.complaints.find_one.return_value = None
        entry = ComplaintLogEntry(
            complaint_id="missing",
            event="duplicate_merged",
            from_status=ComplaintStatus.SUBMITTED,
            to_status=ComplaintStatus.SUBMITTED,
            actor_id="citizen-2"
        )

        with pytest.raises(ComplaintNotFoundError):
            self.store.append_merge_note("missing", entry)

    def test_next_sequence(self):
        self.logs.find_one.return_value = {"_id": "x", "sequence": 4}
        assert self.store.next_sequence("c1") == 5

        self.logs.find_one.return_value = None
        assert self.store.next_sequence("c1") == 1

    def test_connection_failure_is_transient(self):
        self.complaints.find_one.side_effect = ConnectionFailure("no primary")

        with pytest.raises(StoreUnavailableError):
            self.store.get_complaint("c1")

    def test_transient_transaction_label(self):
        self.complaints.insert_one.side_effect = PyMongoError(
            "write conflict", error_labels=["TransientTransactionError"]
        )
        complaint = make_complaint()
        entry = build_creation_entry(complaint, ActorContext(actor_id="citizen-1"), NOW)

        with pytest.raises(StoreUnavailableError):
            self.store.create_complaint(complaint, entry)

    def test_permanent_errors_propagate(self):
        self.complaints.find_one.side_effect = OperationFailure("not authorized", code=13)

        with pytest.raises(OperationFailure):
            self.store.get_complaint("c1")

    def test_purge_keeps_newest_entries(self):
        cutoff = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.logs.distinct.return_value = ["c1", "c2"]
        self.logs.aggregate.return_value = [
            {"_id": "c1", "newestId": "e3"},
            {"_id": "c2", "newestId": "e7"},
        ]
        self.logs.delete_many.return_value = Mock(deleted_count=4)

        assert self.store.purge_logs(cutoff) == 4

        self.logs.delete_many.assert_called_once_with(
            {"timestamp": {"$lt": cutoff}, "_id": {"$nin": ["e3", "e7"]}}
        )

    def test_upsert_unit(self):
        unit = MunicipalUnit(id="roads", name="Roads", accepted_type_ids=["pothole"])

        self.store.upsert_unit(unit)

        filter_document, document = self.collections["municipal_units"].replace_one.call_args[0]
        assert filter_document == {"_id": "roads"}
        assert document["acceptedTypeIds"] == ["pothole"]
        assert self.collections["municipal_units"].replace_one.call_args[1] == {"upsert": True}
