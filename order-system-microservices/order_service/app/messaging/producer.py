import json
import logging
import os

import pika

logger = logging.getLogger(__name__)

RABBITMQ_HOST = os.getenv("RABBITMQ_HOST")
EVENTS_EXCHANGE = os.getenv("EVENTS_EXCHANGE", "events")


class RabbitMQProducer:
    """
    Publishes order events to a durable topic exchange.

    A connection is opened per publish and closed right after, so the
    producer can be created per request without holding a socket.
    """

    def __init__(self, host=None, exchange_name=None, exchange_type="topic"):
        self.host = host or RABBITMQ_HOST
        self.exchange_name = exchange_name or EVENTS_EXCHANGE
        self.exchange_type = exchange_type

    def _connect(self):
        connection = pika.BlockingConnection(
            pika.ConnectionParameters(
                host=self.host,
                heartbeat=600,
                blocked_connection_timeout=300
            )
        )
        channel = connection.channel()
        channel.exchange_declare(exchange=self.exchange_name, exchange_type=self.exchange_type, durable=True)
        return connection, channel

    def publish_event(self, event_data: dict, routing_key: str = "order.status_changed"):
        """
        Publishes an event; failures are logged, the caller's work is already committed.

        Args:
            event_data (dict): JSON-serializable payload.
            routing_key (str): Topic key, e.g. 'order.status_changed'.
        """
        connection = None
        try:
            connection, channel = self._connect()
            channel.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=json.dumps(event_data, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Persistent
                    content_type='application/json'
                )
            )
            logger.info("Sent event '%s': %s", routing_key, event_data)
        except pika.exceptions.AMQPError:
            logger.exception("Failed to publish '%s' event", routing_key)
        finally:
            if connection is not None and connection.is_open:
                connection.close()


class NullProducer:
    """Used when no broker is configured."""

    def publish_event(self, event_data: dict, routing_key: str = "order.status_changed"):
        logger.debug("Event '%s' not published (RABBITMQ_HOST unset): %s", routing_key, event_data)


def get_producer():
    """FastAPI dependency returning the configured event producer."""
    if RABBITMQ_HOST:
        return RabbitMQProducer()
    return NullProducer()
