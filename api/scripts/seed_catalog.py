#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Load complaint types and municipal units from a JSON file into the store.

Expected file layout:

    {
      "complaintTypes": [{"id": "pothole", "name": "Pothole", "severityWeight": 1.0}],
      "units": [{"id": "roads", "name": "Roads", "acceptedTypeIds": ["pothole"], "priority": 10}]
    }

Usage: seed_catalog.py catalog.json
"""

import sys
import os
import json
import logging

# Add the parent directory to the path so we can import from api
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import PipelineConfig
from app import create_store
from models.entities import ComplaintType, MunicipalUnit
from services.store import ComplaintStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def seed_catalog(store: ComplaintStore, data: dict) -> tuple:
    """Upsert every catalog entry in `data`; returns (types, units) counts."""
    complaint_types = [ComplaintType.model_validate(item) for item in data.get("complaintTypes", [])]
    units = [MunicipalUnit.model_validate(item) for item in data.get("units", [])]

    known_types = {t.id for t in complaint_types} | {t.id for t in store.list_complaint_types()}
    for unit in units:
        unknown = set(unit.accepted_type_ids) - known_types
        if unknown:
            logger.warning(f"Unit {unit.id} accepts unknown complaint types: {sorted(unknown)}")

    for complaint_type in complaint_types:
        store.upsert_complaint_type(complaint_type)
    for unit in units:
        store.upsert_unit(unit)

    return len(complaint_types), len(units)


def main():
    if len(sys.argv) != 2:
        print("Usage: seed_catalog.py <catalog.json>")
        sys.exit(2)

    try:
        with open(sys.argv[1], "r", encoding="utf-8") as handle:
            data = json.load(handle)

        store = create_store(PipelineConfig.from_env())
        type_count, unit_count = seed_catalog(store, data)

        logger.info(f"Seeded {type_count} complaint types and {unit_count} municipal units")
        logger.info("Run services with a fresh catalog cache or call refresh_catalog() to pick up changes")

    except Exception as e:
        logger.error(f"Failed to seed catalog: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
