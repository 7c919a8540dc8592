"""Inbound SNS message handling.

:class:`NotificationDispatcher` is the single entry point for webhook
deliveries. It verifies the signature, records the delivery, and then:

* ``SubscriptionConfirmation`` -- confirms the subscription through a
  :class:`~amazon_sns.services.subscriptions.SubscriptionManager`, built
  on demand by the ``get_manager`` factory;
* ``Notification`` -- forwards the decoded ``Message`` to the event sink
  when the topic is tracked and active, otherwise drops it;
* anything else -- ignored.

Once the signature checks out the result is always ``ACCEPTED``: SNS
redelivers anything that is not acknowledged, so processing failures are
logged and recorded on the :class:`~amazon_sns.models.InboundMessage` row
instead of being reported back.
"""

import enum
import hashlib
import json
import logging
import time

from datadog import statsd
from django.db import DatabaseError, IntegrityError, transaction

from ..models import InboundMessage
from ..tasks import forward_notification
from ..verification import verify_sns_message
from .subscriptions import ByArn, resolve_topic

logger = logging.getLogger(__name__)

MESSAGE_TYPE_SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
MESSAGE_TYPE_NOTIFICATION = "Notification"


class DispatchResult(enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def decode_message(message):
    """Decode the JSON ``Message`` field; non-JSON bodies are passed through."""
    try:
        return json.loads(message)
    except (TypeError, ValueError):
        return message


class NotificationDispatcher:
    """Verifies and routes SNS webhook deliveries."""

    def __init__(
        self, get_manager, verifier=verify_sns_message, sink=forward_notification
    ):
        self.get_manager = get_manager
        self.verifier = verifier
        self.sink = sink

    def handle(self, raw_body):
        if not self.verifier(raw_body):
            statsd.increment("amazon_sns.message.rejected")
            return DispatchResult.REJECTED

        try:
            data = json.loads(raw_body)
        except (TypeError, ValueError):
            logger.warning("Verified SNS message is not valid JSON")
            return DispatchResult.ACCEPTED
        if not isinstance(data, dict):
            return DispatchResult.ACCEPTED

        message_type = str(data.get("Type", ""))
        tags = [f"message_type:{message_type}"]
        statsd.increment("amazon_sns.message.received", tags=tags)

        record, duplicate = self._record(data, raw_body)
        if duplicate:
            logger.info("Duplicate SNS message %s ignored", record.message_id)
            statsd.increment("amazon_sns.message.duplicate", tags=tags)
            return DispatchResult.ACCEPTED

        start = time.monotonic()
        try:
            record.status = self._process(message_type, data)
        except Exception as exc:
            record.status = InboundMessage.Status.FAILED
            record.error_message = str(exc)[:2000]
            logger.exception(
                "Failed to process SNS message %s (type=%s)",
                record.message_id,
                message_type,
            )
        finally:
            record.processing_time_ms = int((time.monotonic() - start) * 1000)
            self._finish(record)
            statsd.histogram(
                "amazon_sns.message.processing_time_ms",
                record.processing_time_ms,
                tags=tags + [f"status:{record.status}"],
            )
        return DispatchResult.ACCEPTED

    def _process(self, message_type, data):
        if message_type == MESSAGE_TYPE_SUBSCRIPTION_CONFIRMATION:
            return self._confirm(data)
        if message_type == MESSAGE_TYPE_NOTIFICATION:
            return self._notify(data)
        logger.info("Ignoring SNS message of type %r", message_type)
        return InboundMessage.Status.IGNORED

    def _confirm(self, data):
        token = data.get("Token")
        topic_arn = data.get("TopicArn")
        if not token or not topic_arn:
            logger.warning("Subscription confirmation without Token or TopicArn")
            return InboundMessage.Status.IGNORED
        self.get_manager().confirm(token, topic_arn)
        return InboundMessage.Status.PROCESSED

    def _notify(self, data):
        topic = resolve_topic(ByArn(data.get("TopicArn", "")))
        if topic.pk is None or not topic.is_active:
            logger.debug("Dropping notification for inactive topic %s", topic.arn)
            statsd.increment("amazon_sns.notification.dropped")
            return InboundMessage.Status.DROPPED
        self.sink(topic, decode_message(data.get("Message")))
        return InboundMessage.Status.PROCESSED

    def _record(self, data, raw_body):
        """Record the delivery. Returns ``(record, is_duplicate)``.

        Audit writes are best effort; an unsaved record is returned when the
        database is unavailable or the message carries no ``MessageId``.
        """
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
        record = InboundMessage(
            message_id=str(data.get("MessageId", "")),
            message_type=str(data.get("Type", "")),
            topic_arn=str(data.get("TopicArn", "")),
            payload_hash=hashlib.sha256(body).hexdigest(),
        )
        if not record.message_id:
            return record, False
        try:
            if InboundMessage.objects.filter(message_id=record.message_id).exists():
                return record, True
            with transaction.atomic():
                record.save()
        except IntegrityError:
            return record, True
        except DatabaseError as exc:
            logger.warning(
                "Could not record SNS message %s: %s", record.message_id, exc
            )
        return record, False

    def _finish(self, record):
        if record.pk is None:
            return
        try:
            record.save(
                update_fields=[
                    "status",
                    "error_message",
                    "processing_time_ms",
                    "updated_at",
                ]
            )
        except DatabaseError as exc:
            logger.warning(
                "Could not update SNS message %s: %s", record.message_id, exc
            )
