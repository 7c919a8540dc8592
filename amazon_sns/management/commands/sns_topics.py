"""
Manage SNS topics from the command line.

Usage:
    # List tracked topics and their remote subscriptions
    python3 manage.py sns_topics --list

    # Create a topic and subscribe this store's endpoint
    python3 manage.py sns_topics --create orders --auto-subscribe

    # Subscribe / unsubscribe / delete by topic id
    python3 manage.py sns_topics --subscribe 3 --protocol https \
        --endpoint https://partner.example.com/sns
    python3 manage.py sns_topics --unsubscribe 3
    python3 manage.py sns_topics --delete 3

    # Publish a message
    python3 manage.py sns_topics --publish '{"orderId": 42}' --topic-id 3

    # Drop inbound message records older than 30 days
    python3 manage.py sns_topics --purge-messages 30
"""

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from amazon_sns.client import PENDING_CONFIRMATION, SnsClient
from amazon_sns.exceptions import RemoteServiceError, TopicNotFound
from amazon_sns.models import InboundMessage, Topic
from amazon_sns.services.subscriptions import (
    ById,
    Loaded,
    SubscriptionManager,
    require_topic,
)

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = (
        "Create, subscribe, unsubscribe, delete and publish to SNS topics, "
        "and purge old inbound message records"
    )

    def add_arguments(self, parser):
        group = parser.add_mutually_exclusive_group(required=True)
        group.add_argument(
            "--list",
            action="store_true",
            dest="list_topics",
            help="List tracked topics and their remote subscriptions.",
        )
        group.add_argument("--create", metavar="NAME", help="Create a topic.")
        group.add_argument(
            "--subscribe", type=int, metavar="TOPIC_ID", help="Subscribe a topic."
        )
        group.add_argument(
            "--unsubscribe",
            type=int,
            metavar="TOPIC_ID",
            help="Unsubscribe a topic.",
        )
        group.add_argument(
            "--delete", type=int, metavar="TOPIC_ID", help="Delete a topic."
        )
        group.add_argument("--publish", metavar="MESSAGE", help="Publish a message.")
        group.add_argument(
            "--purge-messages",
            type=int,
            metavar="DAYS",
            help="Delete inbound message records older than DAYS days.",
        )
        parser.add_argument(
            "--auto-subscribe",
            action="store_true",
            help="With --create: subscribe this store's endpoint straight away.",
        )
        parser.add_argument(
            "--protocol", default="", help="With --subscribe: subscription protocol."
        )
        parser.add_argument(
            "--endpoint", default="", help="With --subscribe: endpoint to subscribe."
        )
        parser.add_argument(
            "--topic-id", type=int, help="With --publish: topic to publish to."
        )
        parser.add_argument("--subject", default="", help="With --publish: subject.")

    def handle(self, *args, **options):
        if options["purge_messages"] is not None:
            self._purge_messages(options["purge_messages"])
            return

        manager = SubscriptionManager(SnsClient.from_settings())
        try:
            if options["list_topics"]:
                self._list_topics(manager)
            elif options["create"]:
                self._create(manager, options["create"], options["auto_subscribe"])
            elif options["subscribe"]:
                self._subscribe(
                    manager,
                    options["subscribe"],
                    options["protocol"],
                    options["endpoint"],
                )
            elif options["unsubscribe"]:
                self._unsubscribe(manager, options["unsubscribe"])
            elif options["delete"]:
                self._delete(manager, options["delete"])
            elif options["publish"]:
                self._publish(
                    manager,
                    options["publish"],
                    options["topic_id"],
                    options["subject"],
                )
        except TopicNotFound as exc:
            print(f"ERROR: {exc}")
        except RemoteServiceError as exc:
            print(f"ERROR: SNS request failed: {exc}")

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    def _list_topics(self, manager):
        topics = list(Topic.objects.order_by("pk"))
        if not topics:
            print("No SNS topics tracked.")
            return

        print(f"{'ID':<6} {'Name':<30} {'State':<20} {'Active':<7} {'ARN'}")
        print("-" * 100)
        for topic in topics:
            print(
                f"{topic.pk:<6} {topic.name:<30} {topic.state.value:<20} "
                f"{'yes' if topic.is_active else 'no':<7} {topic.arn}"
            )
            if not topic.arn:
                continue
            for subscription in manager.client.list_subscriptions_by_topic(topic.arn):
                print(
                    f"{'':<6}   -> {subscription.get('Protocol', '')} "
                    f"{subscription.get('Endpoint', '')} "
                    f"({subscription.get('SubscriptionArn', '')})"
                )
        print(f"\nTotal: {len(topics)}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _create(self, manager, name, auto_subscribe):
        result = manager.create(name, auto_subscribe=auto_subscribe)
        print(f"  SUCCESS: created {name} → {result.value} (id={result.topic.pk})")
        if auto_subscribe:
            print(f"  Subscription requested for {manager.get_endpoint()}")
        self._warn_if_stale(result)

    def _subscribe(self, manager, topic_id, protocol, endpoint):
        topic = require_topic(ById(topic_id))
        result = manager.request_subscription(
            topic=Loaded(topic), protocol=protocol, endpoint=endpoint
        )
        if result.value == PENDING_CONFIRMATION:
            print(f"  PENDING: {topic.name} awaits subscription confirmation")
        else:
            print(f"  SUCCESS: {topic.name} subscribed ({result.value})")
        self._warn_if_stale(result)

    def _unsubscribe(self, manager, topic_id):
        topic = require_topic(ById(topic_id))
        result = manager.unsubscribe(Loaded(topic))
        if result.value:
            print(f"  SUCCESS: {topic.name} unsubscribed")
        else:
            print(f"  SKIP: {topic.name} has no subscription")
        self._warn_if_stale(result)

    def _delete(self, manager, topic_id):
        topic = require_topic(ById(topic_id))
        result = manager.delete(Loaded(topic))
        print(f"  SUCCESS: deleted {topic.name} ({topic.arn})")
        self._warn_if_stale(result)

    def _publish(self, manager, message, topic_id, subject):
        if not topic_id:
            print("ERROR: --topic-id is required when publishing.")
            return
        result = manager.publish(message, topic=ById(topic_id), subject=subject)
        print(f"  SUCCESS: published message {result.value}")

    def _warn_if_stale(self, result):
        if not result.persisted:
            print(
                f"  WARNING: local topic record not updated: "
                f"{result.persistence_error}"
            )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def _purge_messages(self, days):
        if days < 1:
            print("ERROR: --purge-messages needs at least 1 day.")
            return
        cutoff = timezone.now() - timedelta(days=days)
        deleted, _ = InboundMessage.objects.filter(created_at__lt=cutoff).delete()
        logger.info("Purged %d SNS message records older than %s", deleted, cutoff)
        print(f"  SUCCESS: purged {deleted} message record(s) older than {days} days")
