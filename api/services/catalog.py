# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Read-mostly cache of the complaint type and municipal unit catalogs.

The snapshot is cached in process with a TTL and mirrored into Redis as JSON
so that worker processes share one copy. `invalidate()` drops both layers and
is the hook for external configuration changes.
"""

import json
import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import redis
from redis.exceptions import RedisError
from opentelemetry import trace

from domain.routing import RoutingResolver
from models.entities import ComplaintType, MunicipalUnit
from .store import ComplaintStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CATALOG_CACHE_KEY = "catalog:snapshot"


@dataclass
class CatalogSnapshot:
    """Immutable view of both catalogs and the routing table built from them."""
    complaint_types: Dict[str, ComplaintType]
    units: List[MunicipalUnit]
    resolver: RoutingResolver

    @classmethod
    def build(cls, complaint_types: List[ComplaintType], units: List[MunicipalUnit]) -> "CatalogSnapshot":
        return cls(
            complaint_types={t.id: t for t in complaint_types},
            units=list(units),
            resolver=RoutingResolver(units)
        )

    def to_json(self) -> str:
        return json.dumps({
            "complaintTypes": [t.model_dump(by_alias=True) for t in self.complaint_types.values()],
            "units": [u.model_dump(by_alias=True) for u in self.units],
        })

    @classmethod
    def from_json(cls, payload: str) -> "CatalogSnapshot":
        data = json.loads(payload)
        return cls.build(
            [ComplaintType.model_validate(t) for t in data.get("complaintTypes", [])],
            [MunicipalUnit.model_validate(u) for u in data.get("units", [])]
        )


class CatalogService:
    """Cached access to catalogs owned by configuration."""

    def __init__(
        self,
        store: ComplaintStore,
        redis_client: Optional[redis.Redis] = None,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[CatalogSnapshot] = None
        self._loaded_at = 0.0

    def snapshot(self) -> CatalogSnapshot:
        """Current catalog snapshot, reloading when the TTL has expired."""
        with self._lock:
            if self._snapshot is not None and self._clock() - self._loaded_at < self.ttl_seconds:
                return self._snapshot

            with tracer.start_as_current_span("catalog.load") as span:
                snapshot = self._read_mirror()
                span.set_attribute("catalog.source", "redis" if snapshot else "store")

                if snapshot is None:
                    snapshot = CatalogSnapshot.build(
                        self.store.list_complaint_types(),
                        self.store.list_units()
                    )
                    self._write_mirror(snapshot)

                span.set_attributes({
                    "catalog.complaint_types": len(snapshot.complaint_types),
                    "catalog.units": len(snapshot.units)
                })

            self._snapshot = snapshot
            self._loaded_at = self._clock()

            logger.debug(
                "Catalog snapshot loaded",
                extra={
                    "extra_fields": {
                        "complaint_types": len(snapshot.complaint_types),
                        "units": len(snapshot.units)
                    }
                }
            )
            return snapshot

    def get_complaint_type(self, type_id: str) -> Optional[ComplaintType]:
        return self.snapshot().complaint_types.get(type_id)

    def resolver(self) -> RoutingResolver:
        return self.snapshot().resolver

    def invalidate(self) -> None:
        """Drop the cached snapshot in this process and in Redis."""
        with self._lock:
            self._snapshot = None
            self._loaded_at = 0.0

        if self.redis_client is not None:
            try:
                self.redis_client.delete(CATALOG_CACHE_KEY)
            except RedisError as e:
                logger.warning(f"Failed to invalidate catalog mirror: {e}")

        logger.info("Catalog cache invalidated")

    def _read_mirror(self) -> Optional[CatalogSnapshot]:
        if self.redis_client is None:
            return None
        try:
            payload = self.redis_client.get(CATALOG_CACHE_KEY)
        except RedisError as e:
            logger.warning(f"Catalog mirror read failed: {e}")
            return None

        if payload is None:
            return None

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")

        try:
            return CatalogSnapshot.from_json(payload)
        except ValueError as e:
            logger.warning(f"Discarding unreadable catalog mirror: {e}")
            return None

    def _write_mirror(self, snapshot: CatalogSnapshot) -> None:
        if self.redis_client is None:
            return
        try:
            self.redis_client.setex(CATALOG_CACHE_KEY, self.ttl_seconds, snapshot.to_json())
        except RedisError as e:
            logger.warning(f"Catalog mirror write failed: {e}")
