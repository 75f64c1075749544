# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB connection management and index setup for the complaint collections.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

logger = logging.getLogger(__name__)

COMPLAINTS_COLLECTION = "complaints"
COMPLAINT_LOGS_COLLECTION = "complaint_logs"
COMPLAINT_TYPES_COLLECTION = "complaint_types"
MUNICIPAL_UNITS_COLLECTION = "municipal_units"


@dataclass(frozen=True)
class IndexSpec:
    collection: str
    keys: List[Tuple[str, int]]
    options: Mapping[str, Any]


# Only one open complaint may hold a fingerprint; closed ones are exempt.
INDEXES = (
    IndexSpec(
        COMPLAINTS_COLLECTION,
        [("fingerprint", ASCENDING)],
        {"name": "open_fingerprint_unique", "unique": True, "partialFilterExpression": {"isOpen": True}}
    ),
    IndexSpec(COMPLAINTS_COLLECTION, [("status", ASCENDING), ("updatedAt", DESCENDING)], {}),
    IndexSpec(COMPLAINTS_COLLECTION, [("assignedUnitId", ASCENDING), ("status", ASCENDING)], {}),
    IndexSpec(COMPLAINTS_COLLECTION, [("submitterId", ASCENDING), ("createdAt", DESCENDING)], {}),
    IndexSpec(
        COMPLAINT_LOGS_COLLECTION,
        [("complaintId", ASCENDING), ("timestamp", ASCENDING), ("sequence", ASCENDING)],
        {"name": "complaint_trail"}
    ),
    IndexSpec(COMPLAINT_LOGS_COLLECTION, [("timestamp", ASCENDING)], {"name": "retention_sweep"}),
    IndexSpec(MUNICIPAL_UNITS_COLLECTION, [("acceptedTypeIds", ASCENDING), ("isActive", ASCENDING)], {}),
    IndexSpec(COMPLAINT_TYPES_COLLECTION, [("isActive", ASCENDING)], {}),
)


@dataclass(frozen=True)
class PoolSettings:
    """MongoClient pool tuning."""
    max_pool_size: int = 10
    min_pool_size: int = 1
    max_idle_time_ms: int = 30000
    server_selection_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> "PoolSettings":
        return cls(
            max_pool_size=int(os.getenv('MONGODB_MAX_POOL_SIZE', '10')),
            min_pool_size=int(os.getenv('MONGODB_MIN_POOL_SIZE', '1')),
            max_idle_time_ms=int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000')),
            server_selection_timeout_ms=int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000')),
        )


class MongoDBService:
    """
    Lazily connected MongoDB handle shared by the complaint store.

    Multi-document transactions used by the store need a replica set or
    sharded cluster; a standalone server accepts the connection but fails
    on the first transactional write.
    """

    def __init__(self, connection_string: str, database_name: str, pool: Optional[PoolSettings] = None):
        self.connection_string = connection_string
        self.database_name = database_name
        self.pool = pool or PoolSettings.from_env()
        self._client: Optional[MongoClient] = None

    @property
    def max_pool_size(self) -> int:
        return self.pool.max_pool_size

    @property
    def client(self) -> MongoClient:
        """Connected client; the first access pings the server."""
        if self._client is None:
            self._client = self._connect()
        return self._client

    def _connect(self) -> MongoClient:
        client = MongoClient(
            self.connection_string,
            maxPoolSize=self.pool.max_pool_size,
            minPoolSize=self.pool.min_pool_size,
            maxIdleTimeMS=self.pool.max_idle_time_ms,
            serverSelectionTimeoutMS=self.pool.server_selection_timeout_ms,
            retryWrites=True,
            retryReads=True,
            tz_aware=True
        )
        try:
            client.admin.command('ping')
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            client.close()
            raise

        logger.info(
            "MongoDB connection established",
            extra={"extra_fields": {"database": self.database_name, "max_pool_size": self.pool.max_pool_size}}
        )
        return client

    @property
    def database(self) -> Database:
        return self.client[self.database_name]

    def get_collection(self, collection_name: str) -> Collection:
        return self.database[collection_name]

    def close_connection(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Ping the server and report its version."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {'status': 'unhealthy', 'error': str(e), 'database': self.database_name}

        return {
            'status': 'healthy',
            'ping': result.get('ok') == 1,
            'version': server_info.get('version'),
            'database': self.database_name,
            'connection_pool_size': self.pool.max_pool_size
        }

    def create_indexes(self) -> List[str]:
        """Create every index in INDEXES; returns the index names."""
        names = []
        for spec in INDEXES:
            try:
                names.append(self.get_collection(spec.collection).create_index(spec.keys, **spec.options))
            except Exception as e:
                logger.error(f"Failed to create index on {spec.collection} {spec.keys}: {e}")
                raise

        logger.info(f"Ensured {len(names)} MongoDB indexes on database {self.database_name}")
        return names
