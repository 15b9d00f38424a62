import json
import logging
import time

import pika

from ..config import RABBITMQ_EXCHANGE, RABBITMQ_HOST

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """
    Publishes ledger events (order.created, period.closed, ...) to a durable
    topic exchange. Connects lazily on the first publish.
    """

    def __init__(self, host=None, exchange_name=RABBITMQ_EXCHANGE, exchange_type="topic",
                 max_retries=3, retry_delay=2.0):
        self.host = host or RABBITMQ_HOST or "rabbitmq"
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connection = None
        self.channel = None

    def connect(self):
        """Establishes a connection to RabbitMQ, retrying a bounded number of times."""
        attempt = 0
        while True:
            attempt += 1
            try:
                parameters = pika.ConnectionParameters(
                    host=self.host, heartbeat=600, blocked_connection_timeout=300
                )
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()
                # Durable, so the exchange survives broker restarts.
                self.channel.exchange_declare(
                    exchange=self.exchange_name,
                    exchange_type=self.exchange_type,
                    durable=True,
                )
                logger.info("Connected to RabbitMQ exchange %s on %s", self.exchange_name, self.host)
                return
            except pika.exceptions.AMQPConnectionError:
                if attempt >= self.max_retries:
                    raise
                logger.warning("RabbitMQ not ready, retrying in %ss...", self.retry_delay)
                time.sleep(self.retry_delay)

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created', 'period.closed').
            message (dict): JSON-serializable payload.
        """
        if not self.connection or self.connection.is_closed:
            self.connect()

        try:
            self.channel.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Persistent
                    content_type="application/json",
                ),
            )
            logger.debug("Sent event %s: %s", routing_key, message)
        except Exception:
            logger.exception("Failed to publish %s", routing_key)
            raise

    def close(self):
        """Closes the connection cleanly."""
        if self.connection and not self.connection.is_closed:
            self.connection.close()
