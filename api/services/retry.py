# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Bounded retry of persistence operations at component boundaries.
"""

import time
import logging
from typing import Callable, TypeVar

from domain.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_store_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    retry_delay: float = 0.2,
    operation_name: str = "store operation",
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Run a persistence operation, retrying transient store failures.

    Only StoreUnavailableError is retried, with exponential backoff of
    retry_delay * 2^attempt between attempts. Any other exception propagates
    immediately.

    Args:
        operation: Zero-argument callable performing the operation
        max_retries: Extra attempts after the first one
        retry_delay: Base delay in seconds
        operation_name: Name used in log records
        sleep: Sleep function, replaceable in tests

    Returns:
        The operation's return value

    Raises:
        StoreUnavailableError: If every attempt failed
    """
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except StoreUnavailableError as e:
            if attempt >= max_retries:
                logger.error(
                    "Store operation failed after all retries",
                    extra={
                        "extra_fields": {
                            "operation": operation_name,
                            "total_attempts": attempt + 1,
                            "error": str(e)
                        }
                    }
                )
                raise

            delay = retry_delay * (2 ** attempt)
            logger.warning(
                "Store operation failed, retrying",
                extra={
                    "extra_fields": {
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "retry_delay": delay,
                        "error": str(e)
                    }
                }
            )
            sleep(delay)
