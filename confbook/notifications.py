"""Booking notifications: SMTP email and RabbitMQ events."""
from __future__ import annotations

import json
import logging
import smtplib
from dataclasses import asdict, dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, Iterable, List, Optional, Protocol

import pika
from circuitbreaker import circuit

from .config import Settings
from .models import Booking

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%d %H:%M UTC"


@dataclass(frozen=True)
class BookingSnapshot:
    """Immutable copy of a committed booking, safe to hand to another thread."""

    id: int
    room_id: int
    room_name: str
    user_id: int
    user_email: Optional[str]
    start_time: datetime
    end_time: datetime
    purpose: str
    status: str
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingSnapshot":
        return cls(
            id=booking.id,
            room_id=booking.room_id,
            room_name=booking.room.name if booking.room else "a room",
            user_id=booking.user_id,
            user_email=booking.user.email if booking.user else None,
            start_time=booking.start_time,
            end_time=booking.end_time,
            purpose=booking.purpose,
            status=booking.status.value,
            cancellation_reason=booking.cancellation_reason,
        )


class Notifier(Protocol):
    def notify_created(self, booking: BookingSnapshot) -> None: ...

    def notify_status_changed(self, booking: BookingSnapshot, new_status: str) -> None: ...

    def notify_rescheduled(self, booking: BookingSnapshot) -> None: ...

    def notify_reminder(self, booking: BookingSnapshot) -> None: ...


class NullNotifier:
    def notify_created(self, booking: BookingSnapshot) -> None:
        logger.debug("Notifications disabled; skipping created for booking %s", booking.id)

    def notify_status_changed(self, booking: BookingSnapshot, new_status: str) -> None:
        logger.debug("Notifications disabled; skipping %s for booking %s", new_status, booking.id)

    def notify_rescheduled(self, booking: BookingSnapshot) -> None:
        logger.debug("Notifications disabled; skipping rescheduled for booking %s", booking.id)

    def notify_reminder(self, booking: BookingSnapshot) -> None:
        logger.debug("Notifications disabled; skipping reminder for booking %s", booking.id)


class EmailNotifier:
    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.sender = settings.email_from

    def notify_created(self, booking: BookingSnapshot) -> None:
        self._send(
            booking,
            f"Booking request received: {booking.room_name}",
            f"Your booking request for {booking.room_name} on {booking.start_time.strftime(_TIME_FORMAT)} "
            f"has been received and is {booking.status}.",
        )

    def notify_status_changed(self, booking: BookingSnapshot, new_status: str) -> None:
        body = (
            f"Your booking for {booking.room_name} on {booking.start_time.strftime(_TIME_FORMAT)} "
            f"is now {new_status}."
        )
        if booking.cancellation_reason:
            body += f"\nReason: {booking.cancellation_reason}"
        self._send(booking, f"Booking {new_status}: {booking.room_name}", body)

    def notify_rescheduled(self, booking: BookingSnapshot) -> None:
        self._send(
            booking,
            f"Booking rescheduled: {booking.room_name}",
            f"Your booking for {booking.room_name} now runs from {booking.start_time.strftime(_TIME_FORMAT)} "
            f"to {booking.end_time.strftime(_TIME_FORMAT)}.",
        )

    def notify_reminder(self, booking: BookingSnapshot) -> None:
        self._send(
            booking,
            f"Reminder: Upcoming booking for {booking.room_name}",
            f"This is a reminder for your booking at {booking.start_time.strftime(_TIME_FORMAT)} "
            f"in {booking.room_name}.",
        )

    def _send(self, booking: BookingSnapshot, subject: str, body: str) -> None:
        if not booking.user_email:
            logger.info("Booking %s has no requester email; skipping mail", booking.id)
            return
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = booking.user_email
        message.set_content(body)
        self._deliver(message)
        logger.info("Sent '%s' to %s", subject, booking.user_email)

    @circuit(failure_threshold=5, recovery_timeout=60, name="smtp")
    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)


class QueueNotifier:
    """Publishes booking events to a durable RabbitMQ queue."""

    def __init__(self, settings: Settings) -> None:
        self.host = settings.rabbitmq_host
        self.queue = settings.rabbitmq_queue

    def notify_created(self, booking: BookingSnapshot) -> None:
        self._publish(self._event("booking_created", booking))

    def notify_status_changed(self, booking: BookingSnapshot, new_status: str) -> None:
        event = self._event("booking_status_changed", booking)
        event["status"] = new_status
        self._publish(event)

    def notify_rescheduled(self, booking: BookingSnapshot) -> None:
        self._publish(self._event("booking_rescheduled", booking))

    def notify_reminder(self, booking: BookingSnapshot) -> None:
        self._publish(self._event("booking_reminder", booking))

    @staticmethod
    def _event(name: str, booking: BookingSnapshot) -> Dict[str, Any]:
        payload = asdict(booking)
        payload["start_time"] = booking.start_time.isoformat()
        payload["end_time"] = booking.end_time.isoformat()
        payload["booking_id"] = payload.pop("id")
        payload.pop("user_email")
        return {"event": name, **payload}

    @circuit(failure_threshold=5, recovery_timeout=60, name="rabbitmq")
    def _publish(self, event: Dict[str, Any]) -> None:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=self.host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=self.queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=self.queue,
                body=json.dumps(event),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
        logger.info("Published %s for booking %s", event["event"], event["booking_id"])


class CompositeNotifier:
    """Fans out to several notifiers; one failing channel does not silence the others."""

    def __init__(self, notifiers: Iterable[Notifier]) -> None:
        self.notifiers: List[Notifier] = list(notifiers)

    def _each(self, method: str, *args: Any) -> None:
        for notifier in self.notifiers:
            try:
                getattr(notifier, method)(*args)
            except Exception:
                logger.exception("%s.%s failed", type(notifier).__name__, method)

    def notify_created(self, booking: BookingSnapshot) -> None:
        self._each("notify_created", booking)

    def notify_status_changed(self, booking: BookingSnapshot, new_status: str) -> None:
        self._each("notify_status_changed", booking, new_status)

    def notify_rescheduled(self, booking: BookingSnapshot) -> None:
        self._each("notify_rescheduled", booking)

    def notify_reminder(self, booking: BookingSnapshot) -> None:
        self._each("notify_reminder", booking)


def build_notifier(settings: Settings) -> Notifier:
    notifiers: List[Notifier] = []
    if settings.email_enabled:
        notifiers.append(EmailNotifier(settings))
    if settings.rabbitmq_enabled:
        notifiers.append(QueueNotifier(settings))
    if not notifiers:
        return NullNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)
