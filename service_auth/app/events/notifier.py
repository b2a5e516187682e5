"""
Kafka event notifier for the Auth service.
"""

import asyncio
from typing import Any, Dict, Optional

from kafka import KafkaProducer

from shared.logging import get_logger
from ..errors import PublishError
from ..models import DomainEvent

USER_REGISTERED_TOPIC = "user.registered"


class EventNotifier:
    """Best-effort publisher of domain events.

    start() makes a single, bounded attempt to reach the brokers. If that
    fails the notifier is disabled for the rest of the process lifetime:
    there is no reconnection loop and every publish becomes a no-op. Blocking
    producer calls run in a worker thread.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        connect_timeout: float = 2.0,
        send_timeout: float = 5.0,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.connect_timeout = connect_timeout
        self.send_timeout = send_timeout
        self.logger = get_logger("auth.events.notifier")
        self.producer: Optional[KafkaProducer] = None
        self.disabled = False
        self.disabled_reason: Optional[str] = None
        self._drop_logged = False

    async def start(self) -> None:
        """Connect to the brokers, or disable the notifier for good."""
        if not self.bootstrap_servers:
            self._disable("no bootstrap servers configured")
            return

        try:
            self.producer = await asyncio.to_thread(self._connect)
        except Exception as e:
            self._disable(str(e))
            return

        self.logger.info("Kafka producer started", bootstrap_servers=self.bootstrap_servers)

    async def stop(self) -> None:
        """Flush pending messages and close the producer."""
        if self.producer:
            producer, self.producer = self.producer, None
            await asyncio.to_thread(self._close, producer)
            self.logger.info("Kafka producer stopped")

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Publish one event and wait for the broker acknowledgement.

        Raises:
            PublishError: if the event could not be delivered. Callers treat
                this as non-fatal.
        """
        if self.disabled:
            if not self._drop_logged:
                self._drop_logged = True
                self.logger.info(
                    "Event notifier disabled, dropping events",
                    topic=topic,
                    reason=self.disabled_reason
                )
            return

        if self.producer is None:
            raise PublishError(topic, "producer not started")

        event = DomainEvent(topic=topic, payload=payload)
        try:
            metadata = await asyncio.to_thread(self._send, topic, event.to_bytes())
        except Exception as e:
            raise PublishError(topic, str(e)) from e

        self.logger.debug(
            "Event published",
            topic=topic,
            partition=getattr(metadata, "partition", None),
            offset=getattr(metadata, "offset", None)
        )

    def health(self) -> str:
        if self.disabled:
            return "disabled"
        return "ok" if self.producer is not None else "stopped"

    def _connect(self) -> KafkaProducer:
        timeout_ms = int(self.connect_timeout * 1000)
        return KafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            acks='all',
            retries=3,
            linger_ms=10,
            api_version_auto_timeout_ms=timeout_ms,
            request_timeout_ms=max(timeout_ms, int(self.send_timeout * 1000)),
            max_block_ms=int(self.send_timeout * 1000),
        )

    def _send(self, topic: str, value: bytes):
        future = self.producer.send(topic, value=value)
        return future.get(timeout=self.send_timeout)

    @staticmethod
    def _close(producer: KafkaProducer) -> None:
        producer.flush()
        producer.close()

    def _disable(self, reason: str) -> None:
        self.disabled = True
        self.disabled_reason = reason
        self.logger.warning("Kafka unavailable, event publishing disabled", reason=reason)
