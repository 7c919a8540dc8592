"""Subscription lifecycle for SNS topics.

Keeps the local :class:`~amazon_sns.models.Topic` rows in step with the
remote SNS state::

    UNCREATED -> CREATED -> SUBSCRIBE_REQUESTED -> CONFIRMED
                    ^                                  |
                    +----------- unsubscribe ----------+

SNS is the source of truth.  Remote failures raise
:class:`~amazon_sns.exceptions.RemoteServiceError` to the caller, while a
failed local write after a successful remote call is logged and reported on
the returned :class:`LifecycleResult` instead of failing the operation.

Usage::

    manager = SubscriptionManager(SnsClient.from_settings())
    result = manager.create("orders", auto_subscribe=True)
    if not result.persisted:
        ...  # remote topic exists, local row is stale
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from django.db import DatabaseError, transaction
from django.utils import timezone

from ..client import PENDING_CONFIRMATION
from ..conf import get_endpoint, get_protocol, get_setting
from ..exceptions import LocalPersistenceError, TopicNotFound
from ..models import Topic

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Topic references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ById:
    topic_id: int


@dataclass(frozen=True)
class ByArn:
    arn: str


@dataclass(frozen=True)
class Loaded:
    topic: Topic


TopicRef = Union[ById, ByArn, Loaded]


def resolve_topic(ref: Optional[TopicRef], fallback_id: Optional[int] = None) -> Topic:
    """Resolve a topic reference to a :class:`Topic`.

    * ``Loaded`` returns the given topic, unless it has no primary key and
      *fallback_id* is set, in which case the row with that id is loaded.
    * ``ById`` / ``ByArn`` look the row up in the database.
    * ``None`` loads *fallback_id* when given.

    An unresolved reference yields a fresh, unsaved ``Topic`` (carrying the
    ARN for ``ByArn``) rather than an error, so flows such as confirming a
    subscription for an unknown topic can carry on.
    """
    if isinstance(ref, Loaded):
        if ref.topic.pk is None and fallback_id is not None:
            return Topic.objects.filter(pk=fallback_id).first() or ref.topic
        return ref.topic
    if isinstance(ref, ById):
        return Topic.objects.filter(pk=ref.topic_id).first() or Topic()
    if isinstance(ref, ByArn):
        if ref.arn:
            topic = Topic.objects.filter(arn=ref.arn).first()
            if topic is not None:
                return topic
        return Topic(arn=ref.arn)
    if ref is not None:
        raise TypeError(f"Unsupported topic reference: {ref!r}")
    if fallback_id is not None:
        return Topic.objects.filter(pk=fallback_id).first() or Topic()
    return Topic()


def require_topic(ref: TopicRef) -> Topic:
    """Resolve a reference for a user-initiated action; missing rows raise."""
    topic = resolve_topic(ref)
    if topic.pk is None:
        raise TopicNotFound(f"Topic not found: {ref!r}")
    return topic


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class LifecycleResult:
    """Outcome of a lifecycle operation.

    ``value`` is the remote result (topic ARN, subscription ARN or
    :data:`~amazon_sns.client.PENDING_CONFIRMATION`, message ID, ...).
    ``persistence_error`` is set when the local write that followed a
    successful remote call failed; callers may ignore it.
    """

    topic: Topic
    value: Any = None
    persistence_error: Optional[LocalPersistenceError] = None

    @property
    def persisted(self):
        return self.persistence_error is None


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SubscriptionManager:
    """Orchestrates topic creation, subscription and teardown."""

    def __init__(self, client, protocol="", endpoint=""):
        self.client = client
        self._protocol = protocol
        self._endpoint = endpoint

    def get_protocol(self):
        return self._protocol or get_protocol()

    def get_endpoint(self):
        return self._endpoint or get_endpoint()

    def _save(self, topic, action):
        """Best-effort save after a remote call. Returns the error, if any."""
        try:
            with transaction.atomic():
                topic.save()
        except DatabaseError as exc:
            logger.warning(
                "Could not save topic %s after %s: %s",
                topic.arn or topic.name,
                action,
                exc,
            )
            return LocalPersistenceError(
                f"Failed to save topic after {action}", original=exc
            )
        return None

    def _delete(self, topic):
        try:
            with transaction.atomic():
                topic.delete()
        except DatabaseError as exc:
            logger.warning("Could not delete topic row %s: %s", topic.pk, exc)
            return LocalPersistenceError("Failed to delete topic row", original=exc)
        return None

    def create(self, name, auto_subscribe=False, topic=None):
        """Create the remote topic and record its ARN.

        *topic* optionally points at an existing row to update (for example
        one created by the admin form). When *auto_subscribe* is set, this
        store's own endpoint is subscribed straight away.
        """
        arn = self.client.create_topic(name)

        target = resolve_topic(topic) if topic is not None else Topic()
        target.name = name
        target.arn = arn
        result = LifecycleResult(target, arn, self._save(target, "create"))
        logger.info("Created SNS topic %s (%s)", name, arn)

        if auto_subscribe:
            subscribed = self.request_subscription(Loaded(target))
            result.persistence_error = (
                result.persistence_error or subscribed.persistence_error
            )
        return result

    def request_subscription(self, topic, protocol="", endpoint=""):
        """Subscribe an endpoint to the topic.

        Protocol and endpoint default to ``AMAZON_SNS['PROTOCOL']`` and this
        store's own webhook URL. Any other endpoint marks the topic as
        ``EXTERNAL``. Protocols that confirm synchronously store the
        subscription ARN right away; the rest wait for the confirmation
        message.
        """
        topic = resolve_topic(topic)
        if not topic.arn:
            raise TopicNotFound(f"Topic {topic.name or topic.pk} has no remote ARN")

        own_endpoint = self.get_endpoint()
        protocol = protocol or self.get_protocol()
        endpoint = endpoint or own_endpoint

        subscription_arn = self.client.subscribe(topic.arn, protocol, endpoint)
        logger.info(
            "Subscribed %s to %s via %s: %s",
            endpoint,
            topic.arn,
            protocol,
            subscription_arn,
        )

        if endpoint != own_endpoint:
            topic.endpoint_type = Topic.EndpointType.EXTERNAL
        else:
            topic.endpoint_type = Topic.EndpointType.STANDARD

        if subscription_arn == PENDING_CONFIRMATION:
            topic.subscription_requested_at = timezone.now()
        else:
            topic.subscription_arn = subscription_arn
            topic.subscription_requested_at = None

        error = self._save(topic, "subscribe") if topic.pk else None
        return LifecycleResult(topic, subscription_arn, error)

    def confirm(self, token, topic_arn):
        """Confirm a pending subscription and store its ARN.

        The remote confirmation always goes through. Updating the local row
        is best effort: an unknown topic is not an error.
        """
        subscription_arn = self.client.confirm_subscription(
            token, topic_arn, get_setting("AUTHENTICATE_ON_UNSUBSCRIBE")
        )

        try:
            topic = resolve_topic(ByArn(topic_arn))
        except DatabaseError as exc:
            logger.warning("Could not look up topic %s: %s", topic_arn, exc)
            return LifecycleResult(
                Topic(arn=topic_arn),
                subscription_arn,
                LocalPersistenceError("Failed to look up topic", original=exc),
            )

        if topic.pk is None:
            logger.info("Confirmed subscription for untracked topic %s", topic_arn)
            return LifecycleResult(topic, subscription_arn)
        if not subscription_arn:
            return LifecycleResult(topic, subscription_arn)

        topic.subscription_arn = subscription_arn
        topic.subscription_requested_at = None
        return LifecycleResult(topic, subscription_arn, self._save(topic, "confirm"))

    def unsubscribe(self, topic):
        """Remove the topic's subscription. No-op when not subscribed."""
        topic = resolve_topic(topic)
        if not topic.subscription_arn:
            logger.info("Topic %s has no subscription to remove", topic.arn or topic.pk)
            return LifecycleResult(topic, False)

        self.client.unsubscribe(topic.subscription_arn)
        topic.subscription_arn = ""
        topic.subscription_requested_at = None

        error = self._save(topic, "unsubscribe") if topic.pk else None
        return LifecycleResult(topic, True, error)

    def delete(self, topic):
        """Unsubscribe if needed, delete the remote topic, then the local row."""
        topic = resolve_topic(topic)

        if topic.arn:
            if topic.subscription_arn:
                self.client.unsubscribe(topic.subscription_arn)
                topic.subscription_arn = ""
                topic.subscription_requested_at = None
                # Recorded now so a failed delete_topic leaves the row accurate.
                if topic.pk:
                    self._save(topic, "unsubscribe")
            self.client.delete_topic(topic.arn)
            logger.info("Deleted SNS topic %s", topic.arn)

        error = self._delete(topic) if topic.pk else None
        return LifecycleResult(topic, True, error)

    def publish(
        self,
        message,
        topic=None,
        subject="",
        target_arn="",
        message_structure="",
        message_attributes=None,
    ):
        """Publish to a topic (or a direct *target_arn*). Returns the message ID."""
        resolved = resolve_topic(topic) if topic is not None else Topic()
        if not resolved.arn and not target_arn:
            raise TopicNotFound("A topic ARN or target ARN is required to publish")

        message_id = self.client.publish(
            message,
            topic_arn=resolved.arn,
            subject=subject,
            target_arn=target_arn,
            message_structure=message_structure,
            message_attributes=message_attributes,
        )
        return LifecycleResult(resolved, message_id)

    def set_active(self, topic, is_active):
        """Enable or disable forwarding of notifications for a topic."""
        topic = require_topic(topic)
        topic.is_active = is_active
        topic.save(update_fields=["is_active", "updated_at"])
        return LifecycleResult(topic, is_active)
