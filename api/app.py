"""
Şehir Asistanı complaint pipeline - application wiring.

Builds the complaint service and the retention scheduler from environment
configuration. Run as a script to start the retention sweeper until
interrupted; the transport layer imports `create_complaint_service`.
"""

import logging
import signal
import threading
from typing import Optional

import redis

from config import PipelineConfig
from domain.complaints import ModerationPolicy
from domain.moderation import create_moderation_filter
from observability.config import setup_observability
from services.audit import AuditLogService
from services.catalog import CatalogService
from services.complaints import ComplaintService
from services.deduplication import DeduplicationIndex
from services.locks import LocalLockManager, RedisLockManager
from services.mongodb import MongoDBService
from services.mongo_store import MongoComplaintStore
from services.notifications import create_notification_publisher
from services.retention import RetentionSweeper, RetentionScheduler
from services.state_machine import ComplaintStateMachine
from services.store import ComplaintStore, InMemoryComplaintStore
from services.validator import ComplaintValidator

logger = logging.getLogger(__name__)


def create_store(config: PipelineConfig) -> ComplaintStore:
    """Persistence backend selected by STORE_BACKEND."""
    if config.store_backend == "memory":
        return InMemoryComplaintStore()
    return MongoComplaintStore(MongoDBService(config.mongodb_uri, config.mongodb_database))


def create_lock_manager(config: PipelineConfig, redis_client: Optional[redis.Redis] = None):
    """Lock backend selected by LOCK_BACKEND."""
    if config.lock_backend == "local":
        return LocalLockManager(wait_seconds=config.lock_wait_seconds)
    return RedisLockManager(
        client=redis_client or redis.from_url(config.redis_url),
        timeout_seconds=config.lock_timeout_seconds,
        wait_seconds=config.lock_wait_seconds
    )


def create_complaint_service(
    config: Optional[PipelineConfig] = None,
    store: Optional[ComplaintStore] = None,
    notifier=None
) -> ComplaintService:
    """
    Wire the complaint pipeline.

    Args:
        config: Pipeline configuration; read from the environment when omitted
        store: Store to use instead of the configured backend
        notifier: Notification publisher to use instead of the configured one

    Returns:
        ComplaintService ready to serve requests
    """
    config = config or PipelineConfig.from_env()
    store = store or create_store(config)

    redis_client = None
    if config.lock_backend == "redis":
        redis_client = redis.from_url(config.redis_url)

    locks = create_lock_manager(config, redis_client)
    catalog = CatalogService(store, redis_client=redis_client, ttl_seconds=config.catalog_cache_ttl_seconds)
    audit = AuditLogService(store)

    if notifier is None:
        notifier = create_notification_publisher(config.amqp_url, config.amqp_exchange)

    state_machine = ComplaintStateMachine(
        store=store,
        catalog=catalog,
        locks=locks,
        audit=audit,
        notifier=notifier,
        notify_on_statuses=config.notify_on_statuses,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay
    )

    validator = ComplaintValidator(
        moderation_filter=create_moderation_filter(config.moderation_max_length, config.moderation_lexicon_path),
        policy=ModerationPolicy(config.moderation_flag_threshold, config.moderation_reject_threshold),
        catalog=catalog,
        dedup=DeduplicationIndex(
            store, locks,
            bucket_hours=config.dedup_bucket_hours,
            geocell_precision=config.dedup_geocell_precision
        ),
        state_machine=state_machine,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay
    )

    logger.info(
        "Complaint service created",
        extra={
            "extra_fields": {
                "environment": config.environment,
                "store_backend": config.store_backend,
                "lock_backend": config.lock_backend,
                "notifications": bool(config.amqp_url)
            }
        }
    )

    return ComplaintService(
        store=store,
        catalog=catalog,
        validator=validator,
        state_machine=state_machine,
        audit=audit,
        locks=locks,
        notifier=notifier,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay
    )


def create_retention_scheduler(
    config: Optional[PipelineConfig] = None,
    store: Optional[ComplaintStore] = None
) -> RetentionScheduler:
    """Build the periodic retention sweeper."""
    config = config or PipelineConfig.from_env()
    store = store or create_store(config)
    sweeper = RetentionSweeper(store, retention_days=config.log_retention_days)
    return RetentionScheduler(sweeper, interval_seconds=config.sweep_interval_seconds)


def main():
    setup_observability()
    config = PipelineConfig.from_env()
    scheduler = create_retention_scheduler(config)

    stopped = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        stopped.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.start()
    stopped.wait()
    scheduler.stop(timeout=30)


if __name__ == '__main__':
    main()
