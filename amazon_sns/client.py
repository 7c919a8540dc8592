"""Thin wrapper around the boto3 SNS client.

:class:`SnsClient` exposes the handful of SNS operations the app needs and
converts every botocore failure into :class:`~amazon_sns.exceptions.RemoteServiceError`
so callers only deal with one exception type.  Build one per unit of work::

    client = SnsClient.from_settings()
    topic_arn = client.create_topic("orders")
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from .conf import get_setting
from .exceptions import RemoteServiceError

logger = logging.getLogger(__name__)

# SNS returns this literal instead of an ARN until the endpoint confirms.
PENDING_CONFIRMATION = "pending confirmation"

_NOT_FOUND_CODES = frozenset({"NotFound", "NotFoundException"})
_RETRYABLE_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "InternalError",
        "ServiceUnavailable",
    }
)


def _to_remote_error(operation, exc):
    """Translate a botocore exception into a RemoteServiceError."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        message = error.get("Message", str(exc))
        return RemoteServiceError(
            f"SNS {operation} failed: {code} {message}".strip(),
            code=code,
            retryable=code in _RETRYABLE_CODES,
        )
    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)):
        return RemoteServiceError(
            f"SNS {operation} timed out: {exc}", code="Timeout", retryable=True
        )
    return RemoteServiceError(f"SNS {operation} failed: {exc}", retryable=True)


class SnsClient:
    """SNS operations used by the subscription lifecycle."""

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_settings(cls):
        """Build a client from the ``AMAZON_SNS`` settings."""
        timeout = get_setting("TIMEOUT")
        config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 2, "mode": "standard"},
        )
        client = boto3.client(
            "sns",
            region_name=get_setting("REGION_NAME"),
            aws_access_key_id=get_setting("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=get_setting("AWS_SECRET_ACCESS_KEY"),
            endpoint_url=get_setting("ENDPOINT_URL"),
            config=config,
        )
        return cls(client)

    def _call(self, operation, **params):
        try:
            return getattr(self._client, operation)(**params)
        except (BotoCoreError, ClientError) as exc:
            error = _to_remote_error(operation, exc)
            logger.warning("%s", error)
            raise error from exc

    def _call_ignoring_not_found(self, operation, **params):
        try:
            return self._call(operation, **params)
        except RemoteServiceError as exc:
            if exc.code in _NOT_FOUND_CODES:
                logger.info("SNS %s: resource already gone (%s)", operation, params)
                return {}
            raise

    def create_topic(self, name):
        """Create (or look up) a topic and return its ARN."""
        return self._call("create_topic", Name=name)["TopicArn"]

    def delete_topic(self, topic_arn):
        """Delete a topic. Deleting a missing topic counts as success."""
        self._call_ignoring_not_found("delete_topic", TopicArn=topic_arn)
        return True

    def subscribe(self, topic_arn, protocol, endpoint):
        """Subscribe an endpoint.

        Returns the subscription ARN, or :data:`PENDING_CONFIRMATION` when the
        protocol needs the endpoint to confirm first (http, https, email).
        """
        response = self._call(
            "subscribe", TopicArn=topic_arn, Protocol=protocol, Endpoint=endpoint
        )
        subscription_arn = response.get("SubscriptionArn", "")
        if not subscription_arn or subscription_arn.lower() == PENDING_CONFIRMATION:
            return PENDING_CONFIRMATION
        return subscription_arn

    def unsubscribe(self, subscription_arn):
        self._call_ignoring_not_found("unsubscribe", SubscriptionArn=subscription_arn)
        return True

    def confirm_subscription(self, token, topic_arn, authenticate_on_unsubscribe=True):
        response = self._call(
            "confirm_subscription",
            Token=token,
            TopicArn=topic_arn,
            AuthenticateOnUnsubscribe=(
                "true" if authenticate_on_unsubscribe else "false"
            ),
        )
        return response.get("SubscriptionArn", "")

    def publish(
        self,
        message,
        topic_arn="",
        subject="",
        target_arn="",
        message_structure="",
        message_attributes=None,
    ):
        """Publish a message and return the SNS message ID.

        Only the optional fields that are set are sent; SNS rejects empty
        ``Subject`` and ``MessageStructure`` values.
        """
        params = {"Message": message}
        if topic_arn:
            params["TopicArn"] = topic_arn
        if subject:
            params["Subject"] = subject
        if target_arn:
            params["TargetArn"] = target_arn
        if message_structure:
            params["MessageStructure"] = message_structure
        if message_attributes:
            params["MessageAttributes"] = message_attributes
        return self._call("publish", **params)["MessageId"]

    def list_subscriptions_by_topic(self, topic_arn):
        """Return every subscription of a topic, following pagination."""
        subscriptions = []
        params = {"TopicArn": topic_arn}
        while True:
            response = self._call("list_subscriptions_by_topic", **params)
            subscriptions.extend(response.get("Subscriptions", []))
            next_token = response.get("NextToken")
            if not next_token:
                return subscriptions
            params["NextToken"] = next_token
