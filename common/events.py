"""RabbitMQ publication of reservation lifecycle events."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings
from .models import Reservation

logger = logging.getLogger(__name__)


def reservation_event(event: str, reservation: Reservation) -> Dict[str, Any]:
    return {
        "event": event,
        "reservation_id": reservation.id,
        "resource_id": reservation.resource_id,
        "owner_id": reservation.owner_id,
        "status": reservation.status.value,
        "appointment_id": reservation.appointment_id,
        "start": reservation.start.isoformat(),
        "end": reservation.end.isoformat(),
    }


def publish_event(message: Dict[str, Any]) -> bool:
    """Send ``message`` to the durable events queue.

    Returns False when publishing is disabled or the broker is unreachable;
    failures never reach the caller.
    """

    settings = get_settings()
    if not settings.events_enabled:
        return False
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.rabbitmq_host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=settings.events_queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=settings.events_queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
    except AMQPError as exc:
        logger.error("[RabbitMQ] Could not publish %s: %s", message.get("event"), exc)
        return False
    logger.info("[RabbitMQ] Published %s for reservation %s", message.get("event"), message.get("reservation_id"))
    return True
