# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Stateful components and external integrations.
"""

from .store import ComplaintStore, InMemoryComplaintStore
from .mongodb import MongoDBService
from .mongo_store import MongoComplaintStore
from .locks import LocalLockManager, RedisLockManager
from .catalog import CatalogService, CatalogSnapshot
from .audit import AuditLogService
from .deduplication import DeduplicationIndex
from .state_machine import ComplaintStateMachine
from .validator import ComplaintValidator
from .notifications import (
    AMQPConfig, AMQPNotificationPublisher, NullNotificationPublisher,
    PublishResult, create_notification_publisher
)
from .retention import RetentionSweeper, RetentionScheduler, SweepResult
from .retry import retry_store_operation
from .complaints import ComplaintService

__all__ = [
    "ComplaintStore",
    "InMemoryComplaintStore",
    "MongoDBService",
    "MongoComplaintStore",
    "LocalLockManager",
    "RedisLockManager",
    "CatalogService",
    "CatalogSnapshot",
    "AuditLogService",
    "DeduplicationIndex",
    "ComplaintStateMachine",
    "ComplaintValidator",
    "AMQPConfig",
    "AMQPNotificationPublisher",
    "NullNotificationPublisher",
    "PublishResult",
    "create_notification_publisher",
    "RetentionSweeper",
    "RetentionScheduler",
    "SweepResult",
    "retry_store_operation",
    "ComplaintService",
]
