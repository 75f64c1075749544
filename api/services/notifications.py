# SPDX-License-Identifier: Apache-2.0

"""
Outbound complaint status notifications over AMQP.

Publishing is fire-and-forget from the state machine's point of view:
publishers report failures through PublishResult and never raise.
"""

import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, Optional, Generator, Callable
from urllib.parse import urlparse

import pika
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.propagate import inject

from models.entities import Complaint, ComplaintLogEntry


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

STATUS_CHANGED_EVENT = "complaint.status_changed"


@dataclass
class AMQPConfig:
    """AMQP configuration settings."""
    url: str
    exchange: str = "complaints.events"
    connection_timeout: int = 30
    heartbeat: int = 600
    blocked_connection_timeout: int = 300
    retry_delay: float = 1.0
    max_retries: int = 3


@dataclass
class PublishResult:
    """Result of message publishing operation."""
    success: bool
    correlation_id: str
    exchange: str
    routing_key: str
    error: Optional[str] = None
    retry_count: int = 0


class AMQPConnectionError(Exception):
    """Raised when AMQP connection fails."""
    pass


def build_status_message(
    complaint: Complaint,
    entry: ComplaintLogEntry,
    correlation_id: str
) -> Dict[str, Any]:
    """Message body announcing a committed status change."""
    message = {
        "event": STATUS_CHANGED_EVENT,
        "complaint_id": complaint.id,
        "type_id": complaint.type_id,
        "from_status": entry.from_status.value if entry.from_status else None,
        "to_status": entry.to_status.value,
        "assigned_unit_id": complaint.assigned_unit_id,
        "actor_id": entry.actor_id,
        "note": entry.note,
        "timestamp": entry.timestamp.isoformat(),
        "correlation_id": correlation_id,
    }

    # Propagate the current trace to consumers
    trace_context: Dict[str, str] = {}
    inject(trace_context)
    message["trace_context"] = trace_context

    return message


def status_routing_key(entry: ComplaintLogEntry) -> str:
    """Topic routing key of a status change, e.g. complaint.resolved."""
    return f"complaint.{entry.to_status.value}"


class NullNotificationPublisher:
    """Publisher used when no broker is configured."""

    exchange = ""

    def publish_status_change(self, complaint: Complaint, entry: ComplaintLogEntry) -> PublishResult:
        correlation_id = str(uuid.uuid4())
        logger.debug(
            "Notifications disabled, skipping status change",
            extra={"extra_fields": {"complaint_id": complaint.id, "to_status": entry.to_status.value}}
        )
        return PublishResult(
            success=False,
            correlation_id=correlation_id,
            exchange=self.exchange,
            routing_key=status_routing_key(entry),
            error="Notifications disabled"
        )

    def health_check(self) -> bool:
        return True


class AMQPNotificationPublisher:
    """
    Publishes complaint status changes to a topic exchange.

    Connections are opened per publish and always closed, so no broker
    state outlives a request.
    """

    def __init__(self, config: AMQPConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.exchange = config.exchange
        self._sleep = sleep
        self._connection_params = self._parse_connection_url(config.url)

    def _parse_connection_url(self, url: str) -> pika.ConnectionParameters:
        """Parse AMQP URL and create connection parameters."""
        parsed = urlparse(url)

        return pika.ConnectionParameters(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 5672,
            virtual_host=parsed.path.lstrip('/') or '/',
            credentials=pika.PlainCredentials(
                username=parsed.username or 'guest',
                password=parsed.password or 'guest'
            ),
            connection_attempts=1,
            socket_timeout=self.config.connection_timeout,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout
        )

    @contextmanager
    def _get_connection(self) -> Generator[Any, None, None]:
        """Open a channel with the exchange declared, closing everything afterwards."""
        connection = None
        channel = None

        try:
            with tracer.start_as_current_span("amqp.connection.create") as span:
                connection = pika.BlockingConnection(self._connection_params)
                channel = connection.channel()
                channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )

                span.set_attributes({
                    "amqp.host": self._connection_params.host,
                    "amqp.port": self._connection_params.port,
                    "amqp.virtual_host": self._connection_params.virtual_host
                })

            yield channel

        except pika.exceptions.AMQPConnectionError as e:
            logger.error(
                "AMQP connection failed",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "host": self._connection_params.host,
                        "port": self._connection_params.port
                    }
                }
            )
            raise AMQPConnectionError(f"Failed to connect to AMQP broker: {e}")

        finally:
            if channel is not None and not channel.is_closed:
                try:
                    channel.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP channel: {e}")

            if connection is not None and not connection.is_closed:
                try:
                    connection.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP connection: {e}")

    def publish_status_change(self, complaint: Complaint, entry: ComplaintLogEntry) -> PublishResult:
        """
        Publish a committed status change.

        Args:
            complaint: Complaint after the transition
            entry: Log entry recording the transition

        Returns:
            PublishResult: Result of the publishing operation
        """
        correlation_id = str(uuid.uuid4())
        routing_key = status_routing_key(entry)

        with tracer.start_as_current_span("amqp.publish.status_change") as span:
            span.set_attributes({
                "complaint.id": complaint.id,
                "complaint.status": entry.to_status.value,
                "amqp.exchange": self.exchange,
                "amqp.routing_key": routing_key,
                "amqp.correlation_id": correlation_id
            })

            try:
                message = build_status_message(complaint, entry, correlation_id)
                body = json.dumps(message, ensure_ascii=False, separators=(',', ':'))
            except (TypeError, ValueError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(
                    "Message serialization failed",
                    extra={"extra_fields": {"complaint_id": complaint.id, "error": str(e)}},
                    exc_info=True
                )
                return PublishResult(
                    success=False,
                    correlation_id=correlation_id,
                    exchange=self.exchange,
                    routing_key=routing_key,
                    error=str(e)
                )

            result = self._publish_with_retry(routing_key, body, message["trace_context"], correlation_id)
            if not result.success:
                span.set_status(Status(StatusCode.ERROR, result.error or "publish failed"))
            return result

    def _publish_with_retry(
        self,
        routing_key: str,
        body: str,
        headers: Dict[str, str],
        correlation_id: str
    ) -> PublishResult:
        """Publish message with exponential backoff retry logic."""
        last_error = None

        for attempt in range(self.config.max_retries + 1):
            try:
                with self._get_connection() as channel:
                    properties = pika.BasicProperties(
                        correlation_id=correlation_id,
                        timestamp=int(time.time()),
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        headers=headers
                    )

                    channel.basic_publish(
                        exchange=self.exchange,
                        routing_key=routing_key,
                        body=body,
                        properties=properties
                    )

                    logger.info(
                        "Message published successfully",
                        extra={
                            "extra_fields": {
                                "exchange": self.exchange,
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1
                            }
                        }
                    )

                    return PublishResult(
                        success=True,
                        correlation_id=correlation_id,
                        exchange=self.exchange,
                        routing_key=routing_key,
                        retry_count=attempt
                    )

            except Exception as e:
                last_error = e

                if attempt < self.config.max_retries:
                    delay = self.config.retry_delay * (2 ** attempt)

                    logger.warning(
                        "Message publish failed, retrying",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1,
                                "retry_delay": delay,
                                "error": str(e)
                            }
                        }
                    )

                    self._sleep(delay)
                else:
                    logger.error(
                        "Message publish failed after all retries",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "total_attempts": attempt + 1,
                                "error": str(e)
                            }
                        }
                    )

        return PublishResult(
            success=False,
            correlation_id=correlation_id,
            exchange=self.exchange,
            routing_key=routing_key,
            error=str(last_error),
            retry_count=self.config.max_retries
        )

    def health_check(self) -> bool:
        """
        Perform health check by attempting to connect to AMQP broker.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            with self._get_connection():
                return True
        except Exception as e:
            logger.warning(
                "AMQP health check failed",
                extra={"extra_fields": {"error": str(e), "host": self._connection_params.host}}
            )
            return False


def create_notification_publisher(amqp_url: Optional[str], exchange: str = "complaints.events"):
    """
    Factory function to create the notification publisher.

    Connection tuning is read from the environment. Returns a
    NullNotificationPublisher when no AMQP URL is configured.
    """
    if not amqp_url:
        logger.info("AMQP_URL not set, complaint notifications disabled")
        return NullNotificationPublisher()

    config = AMQPConfig(
        url=amqp_url,
        exchange=exchange,
        connection_timeout=int(os.getenv('AMQP_CONNECTION_TIMEOUT', '30')),
        heartbeat=int(os.getenv('AMQP_HEARTBEAT', '600')),
        blocked_connection_timeout=int(os.getenv('AMQP_BLOCKED_TIMEOUT', '300')),
        retry_delay=float(os.getenv('AMQP_RETRY_DELAY', '1.0')),
        max_retries=int(os.getenv('AMQP_MAX_RETRIES', '3'))
    )

    return AMQPNotificationPublisher(config)
