# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Routing of complaint types to responsible municipal units.
"""

from typing import Dict, List, Iterable

from models.entities import MunicipalUnit
from .errors import RoutingNotFoundError


def routing_key(unit: MunicipalUnit):
    """Ordering of eligible units: declared priority first, then lowest id."""
    return (unit.priority, unit.id)


def build_routing_table(units: Iterable[MunicipalUnit]) -> Dict[str, List[str]]:
    """
    Build a type -> ordered unit IDs table from the unit catalog.

    Args:
        units: Municipal unit catalog entries

    Returns:
        Dictionary mapping each accepted type ID to eligible unit IDs, best first
    """
    table: Dict[str, List[MunicipalUnit]] = {}
    for unit in units:
        if not unit.is_active:
            continue
        for type_id in set(unit.accepted_type_ids):
            table.setdefault(type_id, []).append(unit)

    return {
        type_id: [unit.id for unit in sorted(candidates, key=routing_key)]
        for type_id, candidates in table.items()
    }


class RoutingResolver:
    """Deterministic lookup of the unit responsible for a complaint type."""

    def __init__(self, units: Iterable[MunicipalUnit]):
        self._units = {unit.id: unit for unit in units}
        self._table = build_routing_table(self._units.values())

    def resolve(self, type_id: str) -> str:
        """
        Resolve the municipal unit for a complaint type.

        Raises:
            RoutingNotFoundError: If no active unit accepts the type
        """
        candidates = self._table.get(type_id)
        if not candidates:
            raise RoutingNotFoundError(type_id)
        return candidates[0]

    def candidates(self, type_id: str) -> List[str]:
        """All eligible unit IDs for a type, best first."""
        return list(self._table.get(type_id, []))

    def accepts(self, unit_id: str, type_id: str) -> bool:
        """Check if a specific unit may handle a complaint type."""
        unit = self._units.get(unit_id)
        return unit is not None and unit.accepts(type_id)
