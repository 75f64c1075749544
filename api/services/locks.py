# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Keyed exclusive sections.

RedisLockManager coordinates across worker processes; LocalLockManager
serves single-process deployments and tests. Both expose `hold(key)` as a
context manager that raises LockUnavailableError when the lock cannot be
acquired in time.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, Optional

import redis
from redis.exceptions import LockError, RedisError
from opentelemetry import trace

from domain.errors import LockUnavailableError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class LocalLockManager:
    """Per-key threading locks for a single process."""

    def __init__(self, wait_seconds: float = 5.0):
        self.wait_seconds = wait_seconds
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1

        try:
            if not lock.acquire(timeout=self.wait_seconds):
                raise LockUnavailableError(key)
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._holders[key] -= 1
                # Drop idle locks so the table does not grow with every complaint ID
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]

    def health_check(self) -> bool:
        return True


class RedisLockManager:
    """Distributed locks backed by redis-py's Lock."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        timeout_seconds: float = 10.0,
        wait_seconds: float = 5.0,
        prefix: str = "locks:"
    ):
        self.client = client or redis.from_url(redis_url or "redis://localhost:6379")
        self.timeout_seconds = timeout_seconds
        self.wait_seconds = wait_seconds
        self.prefix = prefix

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        lock_name = f"{self.prefix}{key}"

        with tracer.start_as_current_span("lock.hold") as span:
            span.set_attribute("lock.key", key)

            lock = self.client.lock(
                lock_name,
                timeout=self.timeout_seconds,
                blocking_timeout=self.wait_seconds
            )
            try:
                acquired = lock.acquire()
            except RedisError as e:
                logger.error(
                    "Redis lock acquisition failed",
                    extra={"extra_fields": {"lock_key": key, "error": str(e)}}
                )
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise LockUnavailableError(key)

            if not acquired:
                span.set_attribute("lock.acquired", False)
                raise LockUnavailableError(key)

            span.set_attribute("lock.acquired", True)
            try:
                yield
            finally:
                try:
                    lock.release()
                except LockError as e:
                    # Lock expired while held; the protected write was guarded by CAS
                    logger.warning(
                        "Redis lock expired before release",
                        extra={"extra_fields": {"lock_key": key, "error": str(e)}}
                    )

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
