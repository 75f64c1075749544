# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Retention policy over the complaint audit trail.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Iterable

from models.entities import ComplaintLogEntry


def retention_cutoff(now: datetime, horizon: timedelta) -> datetime:
    """Entries strictly older than the cutoff are eligible for purging."""
    if horizon <= timedelta(0):
        raise ValueError("Retention horizon must be positive")
    return now - horizon


def entry_order(entry: ComplaintLogEntry):
    """Chronological ordering key of log entries."""
    return (entry.timestamp, entry.sequence)


def newest_entry_ids(entries: Iterable[ComplaintLogEntry]) -> Dict[str, str]:
    """Map each complaint ID to the ID of its newest log entry."""
    newest: Dict[str, ComplaintLogEntry] = {}
    for entry in entries:
        current = newest.get(entry.complaint_id)
        if current is None or entry_order(entry) > entry_order(current):
            newest[entry.complaint_id] = entry
    return {complaint_id: entry.id for complaint_id, entry in newest.items()}


def select_purgeable(entries: List[ComplaintLogEntry], cutoff: datetime) -> List[str]:
    """
    Select log entry IDs to delete.

    An entry is purgeable when it is older than the cutoff and is not the
    newest entry of its complaint, so every complaint keeps at least one
    entry.

    Args:
        entries: All log entries under consideration
        cutoff: Retention cutoff

    Returns:
        List of entry IDs to delete
    """
    keep = set(newest_entry_ids(entries).values())
    return [
        entry.id for entry in entries
        if entry.timestamp < cutoff and entry.id not in keep
    ]
