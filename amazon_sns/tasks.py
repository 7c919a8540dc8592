import logging

import dramatiq
from datadog import statsd
from requests.exceptions import ConnectionError, Timeout

from .conf import get_setting
from .exceptions import RemoteServiceError
from .models import Topic
from .signals import sns_notification

logger = logging.getLogger(__name__)

AMAZON_SNS_QUEUE = "amazon_sns"


def should_retry(retries_so_far, exception):
    """Return True for transient errors, False for permanent ones.

    Transient (retry): ConnectionError, Timeout, retryable SNS errors,
    HTTP 5xx, HTTP 429.
    Permanent (fail):  ValueError, KeyError, HTTP 4xx (except 429), etc.
    """
    if isinstance(exception, RemoteServiceError):
        return exception.retryable
    # requests' HTTPError is an OSError; its status decides first.
    status_code = getattr(getattr(exception, "response", None), "status_code", None)
    if status_code:
        return status_code == 429 or 500 <= status_code < 600
    return isinstance(exception, (ConnectionError, Timeout, OSError))


def send_notification(topic, notification):
    """Send the ``sns_notification`` signal for a topic in this process."""
    sns_notification.send(sender=Topic, topic=topic, notification=notification)
    statsd.increment(
        "amazon_sns.notification.forwarded", tags=[f"topic:{topic.name}"]
    )


@dramatiq.actor(
    queue_name=AMAZON_SNS_QUEUE,
    max_retries=5,
    min_backoff=30_000,
    max_backoff=600_000,
    retry_when=should_retry,
)
def forward_sns_notification(topic_id, notification):
    """Deliver a notification to ``sns_notification`` receivers in a worker."""
    topic = Topic.objects.filter(pk=topic_id).first()
    if topic is None:
        logger.warning("Topic %s no longer exists, dropping notification", topic_id)
        return
    if not topic.is_active:
        logger.info("Topic %s was disabled, dropping notification", topic.name)
        statsd.increment(
            "amazon_sns.notification.dropped", tags=[f"topic:{topic.name}"]
        )
        return
    try:
        send_notification(topic, notification)
    except Exception:
        logger.exception("Receiver failed for notification on topic %s", topic.name)
        statsd.increment(
            "amazon_sns.notification.failed", tags=[f"topic:{topic.name}"]
        )
        raise


def forward_notification(topic, notification):
    """Default event sink for inbound notifications.

    Enqueues :func:`forward_sns_notification` when
    ``AMAZON_SNS['ASYNC_NOTIFICATIONS']`` is on, otherwise sends the signal
    inline.
    """
    if get_setting("ASYNC_NOTIFICATIONS"):
        forward_sns_notification.send(topic.pk, notification)
    else:
        send_notification(topic, notification)
