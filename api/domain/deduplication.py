# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Fingerprint computation for duplicate complaint detection.

Two submissions describe the same issue when they come from the same
submitter, for the same complaint type, with the same normalised
description, inside the same time bucket (and, when a location is given,
the same coarse geographic cell).
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Optional

from models.entities import GeoPoint

DEFAULT_BUCKET_HOURS = 24
DEFAULT_GEOCELL_PRECISION = 3

_NON_WORD = re.compile(r"[^\w\s]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+", re.UNICODE)


def normalize_description(description: str) -> str:
    """
    Normalise a description for fingerprinting.

    Lowercases, strips punctuation and collapses whitespace:
    "Water Leak  Near School!!" -> "water leak near school".
    """
    text = description.casefold()
    text = _NON_WORD.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def time_bucket(moment: datetime, bucket_hours: int = DEFAULT_BUCKET_HOURS) -> int:
    """
    Index of the time bucket containing a moment.

    Naive datetimes are taken as UTC. With 24 hour buckets the index is the
    UTC calendar day.
    """
    if bucket_hours <= 0:
        raise ValueError("Bucket width must be positive")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    width_seconds = bucket_hours * 3600
    return int(moment.timestamp() // width_seconds)


def geocell(location: GeoPoint, precision: int = DEFAULT_GEOCELL_PRECISION) -> str:
    """Coarse grid cell of a location."""
    return f"{location.latitude:.{precision}f},{location.longitude:.{precision}f}"


def compute_fingerprint(
    submitter_id: str,
    type_id: str,
    description: str,
    submitted_at: datetime,
    location: Optional[GeoPoint] = None,
    bucket_hours: int = DEFAULT_BUCKET_HOURS,
    geocell_precision: int = DEFAULT_GEOCELL_PRECISION
) -> str:
    """
    Compute the deterministic deduplication fingerprint of a submission.

    Args:
        submitter_id: Submitting user ID
        type_id: Complaint type ID
        description: Raw description
        submitted_at: Submission time
        location: Optional reported location
        bucket_hours: Width of the time bucket
        geocell_precision: Decimal places kept from coordinates

    Returns:
        Hex SHA-256 digest
    """
    parts = [
        submitter_id.strip(),
        type_id.strip(),
        normalize_description(description),
        str(time_bucket(submitted_at, bucket_hours)),
    ]
    if location is not None:
        parts.append(geocell(location, geocell_precision))

    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
