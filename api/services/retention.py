# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Retention sweeper for the complaint audit trail.

`RetentionSweeper.purge(now)` is an idempotent job taking the current time
as input. `RetentionScheduler` runs it on a fixed interval in a daemon
thread; a failed run is logged and retried on the next tick.
"""

import time
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from opentelemetry import trace

from domain.retention import retention_cutoff
from models.base import utc_now
from .store import ComplaintStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweeper run."""
    cutoff: datetime
    deleted_count: int
    duration_ms: float
    succeeded: bool
    error: Optional[str] = None


class RetentionSweeper:
    """Deletes audit log entries older than the retention horizon."""

    def __init__(self, store: ComplaintStore, retention_days: int = 90):
        self.store = store
        self.horizon = timedelta(days=retention_days)

    def purge(self, now: datetime) -> int:
        """
        Delete log entries older than now - horizon, keeping each complaint's newest entry.

        Args:
            now: Snapshot time of this sweep

        Returns:
            Number of entries removed

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        cutoff = retention_cutoff(now, self.horizon)

        with tracer.start_as_current_span("retention.purge") as span:
            span.set_attribute("retention.cutoff", cutoff.isoformat())
            try:
                deleted = self.store.purge_logs(cutoff)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("retention.deleted_count", deleted)
            logger.info(
                "Retention sweep completed",
                extra={
                    "extra_fields": {
                        "cutoff": cutoff.isoformat(),
                        "deleted_count": deleted
                    }
                }
            )
            return deleted

    def run(self, now: datetime) -> SweepResult:
        """Run one sweep, reporting failures in the result instead of raising."""
        started = time.monotonic()
        cutoff = retention_cutoff(now, self.horizon)

        try:
            deleted = self.purge(now)
        except Exception as e:
            logger.error(
                "Retention sweep failed, deferring to next run",
                extra={"extra_fields": {"cutoff": cutoff.isoformat(), "error": str(e)}},
                exc_info=True
            )
            return SweepResult(
                cutoff=cutoff,
                deleted_count=0,
                duration_ms=(time.monotonic() - started) * 1000,
                succeeded=False,
                error=str(e)
            )

        return SweepResult(
            cutoff=cutoff,
            deleted_count=deleted,
            duration_ms=(time.monotonic() - started) * 1000,
            succeeded=True
        )


class RetentionScheduler:
    """Runs the sweeper periodically until stopped."""

    def __init__(
        self,
        sweeper: RetentionSweeper,
        interval_seconds: float = 3600,
        clock: Callable[[], datetime] = utc_now
    ):
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")

        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.last_result: Optional[SweepResult] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="retention-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Retention scheduler started with interval {self.interval_seconds}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Retention scheduler stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SweepResult:
        self.last_result = self.sweeper.run(self.clock())
        return self.last_result

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                # Keep the scheduler alive whatever a run does
                logger.error(f"Unexpected retention scheduler error: {e}", exc_info=True)

            self._stop_event.wait(self.interval_seconds)
