# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pipeline configuration loaded from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from domain.errors import ConfigurationError
from models.enums import ComplaintStatus

STORE_BACKENDS = ("mongodb", "memory")
LOCK_BACKENDS = ("redis", "local")


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float, minimum: float = 0.0) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_choice(env: Mapping[str, str], name: str, default: str, choices) -> str:
    value = (env.get(name) or default).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def _get_statuses(env: Mapping[str, str], name: str, default: str) -> FrozenSet[ComplaintStatus]:
    raw = env.get(name, default)
    statuses = set()
    for item in raw.split(","):
        item = item.strip().lower()
        if not item:
            continue
        try:
            statuses.add(ComplaintStatus(item))
        except ValueError:
            raise ConfigurationError(f"{name} contains unknown status {item!r}")
    return frozenset(statuses)


@dataclass
class PipelineConfig:
    """Runtime settings of the complaint pipeline."""
    environment: str = "development"
    store_backend: str = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017/sehir_asistani_dev"
    mongodb_database: str = "sehir_asistani_dev"
    lock_backend: str = "redis"
    redis_url: str = "redis://localhost:6379"
    lock_timeout_seconds: float = 10.0
    lock_wait_seconds: float = 5.0
    amqp_url: Optional[str] = None
    amqp_exchange: str = "complaints.events"
    moderation_max_length: int = 2000
    moderation_flag_threshold: float = 1.0
    moderation_reject_threshold: float = 3.0
    moderation_lexicon_path: Optional[str] = None
    dedup_bucket_hours: int = 24
    dedup_geocell_precision: int = 3
    log_retention_days: int = 90
    sweep_interval_seconds: int = 3600
    store_max_retries: int = 3
    store_retry_delay: float = 0.2
    catalog_cache_ttl_seconds: int = 300
    notify_on_statuses: FrozenSet[ComplaintStatus] = field(
        default_factory=lambda: frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED})
    )

    def __post_init__(self):
        if self.moderation_flag_threshold > self.moderation_reject_threshold:
            raise ConfigurationError(
                "MODERATION_FLAG_THRESHOLD cannot exceed MODERATION_REJECT_THRESHOLD"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """
        Build the configuration from environment variables.

        Args:
            env: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: If a value is malformed or inconsistent
        """
        env = os.environ if env is None else env

        return cls(
            environment=env.get("ENVIRONMENT", "development"),
            store_backend=_get_choice(env, "STORE_BACKEND", "mongodb", STORE_BACKENDS),
            mongodb_uri=env.get("MONGODB_URI", "mongodb://localhost:27017/sehir_asistani_dev"),
            mongodb_database=env.get("MONGODB_DATABASE", "sehir_asistani_dev"),
            lock_backend=_get_choice(env, "LOCK_BACKEND", "redis", LOCK_BACKENDS),
            redis_url=env.get("REDIS_URL", "redis://localhost:6379"),
            lock_timeout_seconds=_get_float(env, "LOCK_TIMEOUT_SECONDS", 10.0, minimum=0.1),
            lock_wait_seconds=_get_float(env, "LOCK_WAIT_SECONDS", 5.0),
            amqp_url=env.get("AMQP_URL") or None,
            amqp_exchange=env.get("AMQP_EXCHANGE", "complaints.events"),
            moderation_max_length=_get_int(env, "MODERATION_MAX_LENGTH", 2000),
            moderation_flag_threshold=_get_float(env, "MODERATION_FLAG_THRESHOLD", 1.0),
            moderation_reject_threshold=_get_float(env, "MODERATION_REJECT_THRESHOLD", 3.0),
            moderation_lexicon_path=env.get("MODERATION_LEXICON_PATH") or None,
            dedup_bucket_hours=_get_int(env, "DEDUP_BUCKET_HOURS", 24),
            dedup_geocell_precision=_get_int(env, "DEDUP_GEOCELL_PRECISION", 3, minimum=0),
            log_retention_days=_get_int(env, "LOG_RETENTION_DAYS", 90),
            sweep_interval_seconds=_get_int(env, "SWEEP_INTERVAL_SECONDS", 3600),
            store_max_retries=_get_int(env, "STORE_MAX_RETRIES", 3, minimum=0),
            store_retry_delay=_get_float(env, "STORE_RETRY_DELAY", 0.2),
            catalog_cache_ttl_seconds=_get_int(env, "CATALOG_CACHE_TTL_SECONDS", 300),
            notify_on_statuses=_get_statuses(env, "NOTIFY_ON_STATUSES", "resolved,rejected"),
        )
